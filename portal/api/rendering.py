from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from fastapi.templating import Jinja2Templates
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse

from portal.pipeline.context import RequestContext

PACKAGE_DIR = Path(__file__).resolve().parent.parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
PUBLIC_DIR = PACKAGE_DIR / "public"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def context_of(request: Request) -> RequestContext:
    return request.state.ctx


def flash(request: Request, category: str, message: str) -> None:
    context_of(request).session.flash(category, message)


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=302)


def render(
    request: Request,
    name: str,
    context: Optional[Dict[str, Any]] = None,
    *,
    status_code: int = 200,
) -> HTMLResponse:
    """Render a page with the signed-in user and pending flash messages."""
    ctx: Optional[RequestContext] = getattr(request.state, "ctx", None)
    data: Dict[str, Any] = {
        "user": ctx.current_user if ctx else None,
        "messages": ctx.session.pop_flashes() if ctx else {},
    }
    data.update(context or {})
    return templates.TemplateResponse(request, name, data, status_code=status_code)
