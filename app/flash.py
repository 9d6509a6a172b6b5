# =============================================================================
# app/flash.py - Flash Messages
# =============================================================================
# One-shot messages carried across a redirect in the session cookie.
#
# Usage:
#   flash_alert(request, "Created API key")
#   return RedirectResponse("/apikeys", status_code=303)
#
# The next rendered page pops and displays them (see app.render).
# =============================================================================

from fastapi import Request

FLASH_SESSION_KEY = "flash"

FLASH_ERROR = "error"
FLASH_WARNING = "warning"
FLASH_ALERT = "alert"


def _has_session(request: Request) -> bool:
    # The 500 handler runs outside SessionMiddleware
    return "session" in request.scope


def flash(request: Request, kind: str, message: str) -> None:
    if not _has_session(request):
        return
    messages = request.session.get(FLASH_SESSION_KEY) or {}
    messages.setdefault(kind, []).append(message)
    request.session[FLASH_SESSION_KEY] = messages


def flash_error(request: Request, message: str) -> None:
    flash(request, FLASH_ERROR, message)


def flash_warning(request: Request, message: str) -> None:
    flash(request, FLASH_WARNING, message)


def flash_alert(request: Request, message: str) -> None:
    flash(request, FLASH_ALERT, message)


def pop_flash(request: Request) -> dict[str, list[str]]:
    """Remove and return all pending messages, keyed by kind."""
    if not _has_session(request):
        return {}
    return request.session.pop(FLASH_SESSION_KEY, None) or {}
