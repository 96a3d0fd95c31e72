from __future__ import annotations

import logging
from typing import Iterable

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from portal.auth.session import clear_session_cookie_kwargs, encode_session_id, session_cookie_kwargs
from portal.pipeline.context import RequestContext
from portal.pipeline.runner import Pipeline, Step
from portal.pipeline.steps import DEFAULT_STEPS
from portal.services import Services, services_of

logger = logging.getLogger(__name__)


async def commit_session(services: Services, ctx: RequestContext, response: Response) -> None:
    """Persist (or destroy) the request's session and emit the matching cookie."""
    session = ctx.session
    store = services.sessions
    cfg = services.auth

    if session.destroyed:
        if not session.is_new:
            await run_in_threadpool(store.destroy, session.regenerated_from or session.id)
        response.set_cookie(**clear_session_cookie_kwargs(cfg))
        return

    if session.regenerated_from is not None:
        await run_in_threadpool(store.destroy, session.regenerated_from)
    # Record and cookie are both renewed on every response: the signed timestamp
    # and Max-Age must expire together with the store record.
    await run_in_threadpool(store.set, session.id, session.data, cfg.session_ttl_seconds)

    value = encode_session_id(cfg, session.id)
    if value is None:
        raise RuntimeError("Session signing is not configured (SESSION_SECRET)")
    response.set_cookie(**session_cookie_kwargs(cfg, value))


class SessionPipelineMiddleware(BaseHTTPMiddleware):
    """
    Attach a RequestContext to every request, run the global steps, then commit the session.

    Store failures propagate to the application's exception handler and fail only
    the current request.
    """

    def __init__(self, app: ASGIApp, steps: Iterable[Step] = DEFAULT_STEPS) -> None:
        super().__init__(app)
        self.pipeline = Pipeline(steps)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = RequestContext()
        request.state.ctx = ctx

        response = await self.pipeline.run(request, ctx)
        if response is None:
            response = await call_next(request)

        await commit_session(services_of(request), ctx, response)
        return response
