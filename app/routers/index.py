# =============================================================================
# app/routers/index.py - Login Page
# =============================================================================

from fastapi import APIRouter, Request

from app.render import render_html

router = APIRouter(tags=["Index"])


@router.get("/")
def index(request: Request):
    """Render the login page; sign-in runs in the browser via the Firebase JS SDK."""
    return render_html(request, "index.html")
