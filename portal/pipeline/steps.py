"""
Global request steps, run in order before any route handler:

1. resolve_session: load the session named by the cookie, or keep a fresh one
2. attach_identity: load the signed-in user into the context
3. capture_return_path: remember where to send the user after signing in
"""
from __future__ import annotations

import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from portal.auth.session import decode_session_id, session_cookie_name
from portal.pipeline.context import USER_ID_KEY, RequestContext, Session
from portal.services import services_of

logger = logging.getLogger(__name__)


async def resolve_session(request: Request, ctx: RequestContext) -> Optional[Response]:
    # The context starts with a fresh anonymous session; replace it only when the
    # cookie is validly signed and still names a live record.
    services = services_of(request)
    sid = decode_session_id(services.auth, request.cookies.get(session_cookie_name(services.auth)))
    if sid is None:
        return None
    data = await run_in_threadpool(services.sessions.get, sid)
    if data is None:
        logger.debug("Session %s... expired or unknown; starting a new one", sid[:8])
        return None
    ctx.session = Session(sid, data)
    return None


async def attach_identity(request: Request, ctx: RequestContext) -> Optional[Response]:
    user_id = ctx.session.user_id
    if user_id is None:
        return None
    user = await run_in_threadpool(services_of(request).users.get, user_id)
    if user is None:
        # Account deleted elsewhere.
        ctx.session.pop(USER_ID_KEY, None)
        return None
    ctx.current_user = user
    return None


def should_capture_return_path(path: str, *, authenticated: bool) -> bool:
    if not authenticated:
        return (
            path != "/login"
            and path != "/signup"
            and not path.startswith("/auth")
            # Static assets (`/css/main.css`, `/favicon.ico`) are never return targets.
            and "." not in path
        )
    return path == "/account"


async def capture_return_path(request: Request, ctx: RequestContext) -> Optional[Response]:
    path = request.url.path
    if should_capture_return_path(path, authenticated=ctx.is_authenticated):
        ctx.session.return_to = path
    return None


DEFAULT_STEPS = (resolve_session, attach_identity, capture_return_path)
