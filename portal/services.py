from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from starlette.requests import Request

from portal.api.config import ServerConfig
from portal.auth.config import AuthConfig
from portal.auth.providers import IdentityProvider
from portal.auth.rate_limit import RateLimiter
from portal.mail import Mailer
from portal.storage.sessions import SessionStore
from portal.storage.users import UserStore


@dataclass
class Services:
    """Collaborators shared by the pipeline and the handlers, attached to `app.state.services`."""

    auth: AuthConfig
    server: ServerConfig
    sessions: SessionStore
    users: UserStore
    providers: Dict[str, IdentityProvider]
    mailer: Mailer
    login_limiter: RateLimiter


def services_of(request: Request) -> Services:
    return request.app.state.services
