"""
Static route table.

Each route lists its guards in order; they run after the global pipeline steps and
before the handler, and the first one that returns a response wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Tuple

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from portal.api.rendering import context_of
from portal.authz.guards import login_required, provider_required
from portal.handlers import account, api, contact, home, oauth
from portal.pipeline.runner import Pipeline, Step

Handler = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    handler: Handler
    guards: Tuple[Step, ...] = ()
    name: Optional[str] = None


ROUTES: Tuple[Route, ...] = (
    Route("GET", "/", home.index),
    Route("GET", "/login", account.get_login),
    Route("POST", "/login", account.post_login),
    Route("GET", "/logout", account.logout),
    Route("GET", "/forgot", account.get_forgot),
    Route("POST", "/forgot", account.post_forgot),
    Route("GET", "/reset/{token}", account.get_reset),
    Route("POST", "/reset/{token}", account.post_reset),
    Route("GET", "/signup", account.get_signup),
    Route("POST", "/signup", account.post_signup),
    Route("GET", "/contact", contact.get_contact),
    Route("POST", "/contact", contact.post_contact),
    Route("GET", "/account", account.get_account, (login_required,)),
    Route("POST", "/account/profile", account.post_update_profile, (login_required,)),
    Route("POST", "/account/password", account.post_update_password, (login_required,)),
    Route("POST", "/account/delete", account.post_delete_account, (login_required,)),
    Route("GET", "/account/unlink/{provider}", account.get_oauth_unlink, (login_required,)),
    Route("GET", "/api", api.get_api),
    Route("GET", "/api/facebook", api.get_facebook, (login_required, provider_required("facebook"))),
    Route("GET", "/auth/{provider}", oauth.authorize),
    Route("GET", "/auth/{provider}/callback", oauth.callback),
)


def guarded(route: Route) -> Handler:
    """Wrap a handler so its guards run first."""
    guards = Pipeline(route.guards)

    async def endpoint(request: Request) -> Response:
        blocked = await guards.run(request, context_of(request))
        if blocked is not None:
            return blocked
        return await route.handler(request)

    endpoint.__name__ = route.handler.__name__
    return endpoint


def mount_routes(app: FastAPI, routes: Iterable[Route] = ROUTES) -> None:
    for route in routes:
        app.add_api_route(
            route.path,
            guarded(route),
            methods=[route.method],
            name=route.name or f"{route.handler.__module__.rsplit('.', 1)[-1]}.{route.handler.__name__}",
            include_in_schema=False,
        )
