from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from portal.pipeline.context import RequestContext
from portal.pipeline.runner import Step

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


async def login_required(request: Request, ctx: RequestContext) -> Optional[Response]:
    """Send anonymous requests to the login page instead of the handler."""
    if ctx.current_user is None:
        return RedirectResponse(url=LOGIN_PATH, status_code=302)
    return None


def provider_required(provider: str) -> Step:
    """
    Require a linked `provider` account with a stored token.

    Signed-in users without the grant are sent to the provider's sign-in route,
    which links the account on return.
    """

    async def guard(request: Request, ctx: RequestContext) -> Optional[Response]:
        user = ctx.current_user
        if user is None:
            return RedirectResponse(url=LOGIN_PATH, status_code=302)
        if user.token_for(provider) is None:
            logger.info("User id=%s lacks %s grant for %s", user.id, provider, request.url.path)
            return RedirectResponse(url=f"/auth/{provider}", status_code=302)
        return None

    guard.__name__ = f"provider_required[{provider}]"
    return guard
