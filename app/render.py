# =============================================================================
# app/render.py - HTML Rendering
# =============================================================================
# Jinja2 templates live in ASSETS_PATH (app/templates by default).
#
# Every page receives the per-request template variables (see
# app.middleware.PopulateTemplateVariablesMiddleware), the pending flash
# messages and a CSRF token, on top of the handler's own context.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from markupsafe import Markup, escape

from app.config import settings
from app.csrf import CSRF_FORM_FIELD, generate_csrf_token
from app.flash import pop_flash

templates = Jinja2Templates(directory=settings.ASSETS_PATH)


def template_vars(request: Request) -> dict[str, Any]:
    """The request's template variables, created if the middleware hasn't run."""
    if not hasattr(request.state, "template_vars"):
        request.state.template_vars = {}
    return request.state.template_vars


def set_template_var(request: Request, key: str, value: Any) -> None:
    template_vars(request)[key] = value


def render_html(
    request: Request,
    template: str,
    context: dict[str, Any] | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    """
    Render a template with the request's shared variables.

    Args:
        request: Current request
        template: Template path relative to ASSETS_PATH
        context: Handler specific variables (override shared ones)
        status_code: HTTP status of the response
    """
    data = dict(template_vars(request))
    data.update(context or {})
    data["flash"] = pop_flash(request)

    # Pages rendered by the 500 handler have no session to bind a token to
    if "session" in request.scope:
        token = generate_csrf_token(request)
        data["csrf_token"] = token
        data["csrf_field"] = Markup(
            f'<input type="hidden" name="{CSRF_FORM_FIELD}" value="{escape(token)}">'
        )
    else:
        data["csrf_token"] = ""
        data["csrf_field"] = Markup("")

    return templates.TemplateResponse(request, template, data, status_code=status_code)


def render_error(request: Request, status_code: int, message: str) -> HTMLResponse:
    return render_html(
        request,
        "error.html",
        {"status_code": status_code, "message": message},
        status_code=status_code,
    )
