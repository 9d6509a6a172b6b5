# =============================================================================
# app/routers/users.py - Realm User Management
# =============================================================================
# Realm admins grant and revoke access to the current realm. Removing a user
# only revokes the realm grant; the account itself is kept.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from app.auth.dependencies import CurrentRealm, CurrentUser
from app.dependencies import DbDep
from app.exceptions import UserNotFoundError, ValidationFailedError
from app.flash import flash_alert, flash_error
from app.render import render_html
from core.models import UserCreateForm
from core.services import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


@router.get("")
def index(request: Request, db: DbDep, realm: CurrentRealm):
    users = UserService.list_users_for_realm(db, realm)
    return render_html(request, "users.html", {"users": users})


@router.post("/create")
def create(
    request: Request,
    db: DbDep,
    realm: CurrentRealm,
    email: Annotated[str, Form()] = "",
    name: Annotated[str, Form()] = "",
    admin: Annotated[bool, Form()] = False,
):
    """Add a user to the realm, creating the account record if needed."""
    try:
        form = UserCreateForm(email=email, name=name, admin=admin)
        user, created = UserService.add_user_to_realm(db, realm, form.email, form.name, form.admin)
    except ValidationError as e:
        flash_error(request, f"Failed to create user: {len(e.errors())} invalid field(s)")
        return RedirectResponse("/users", status_code=303)
    except ValidationFailedError as e:
        flash_error(request, e.message)
        return RedirectResponse("/users", status_code=303)

    if created:
        flash_alert(request, f"Created user {user.email}")
    else:
        flash_alert(request, f"Added {user.email} to {realm.name}")
    return RedirectResponse("/users", status_code=303)


@router.post("/delete/{email}")
def delete(request: Request, db: DbDep, user: CurrentUser, realm: CurrentRealm, email: str):
    if email.strip().lower() == user.email:
        flash_error(request, "You cannot remove yourself from the realm.")
        return RedirectResponse("/users", status_code=303)

    try:
        removed = UserService.remove_user_from_realm(db, realm, email)
    except UserNotFoundError:
        flash_error(request, f"User {email} is not a member of this realm.")
        return RedirectResponse("/users", status_code=303)

    flash_alert(request, f"Removed {removed.email} from {realm.name}")
    return RedirectResponse("/users", status_code=303)
