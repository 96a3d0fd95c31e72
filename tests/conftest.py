"""
Pytest config.

Pins the repo root on sys.path so `import portal` works when pytest is invoked
without the package installed, and provides an application wired to in-memory
stores with fake mail and identity-provider collaborators.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from fastapi.testclient import TestClient  # noqa: E402

from portal.api.config import ServerConfig, load_server_config  # noqa: E402
from portal.api.server import create_app  # noqa: E402
from portal.auth.config import AuthConfig, ProviderCredentials, load_auth_config  # noqa: E402
from portal.auth.local import create_local_user  # noqa: E402
from portal.auth.models import ProviderProfile, User  # noqa: E402
from portal.auth.providers import IdentityProvider  # noqa: E402
from portal.auth.session import decode_session_id  # noqa: E402
from portal.errors import IdentityProviderError  # noqa: E402
from portal.mail import MailConfig, load_mail_config  # noqa: E402
from portal.storage.config import load_storage_config  # noqa: E402
from portal.storage.sessions import MemorySessionStore  # noqa: E402
from portal.storage.users import MemoryUserStore  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"
PASSWORD = "hunter22"

_ENV_VARS = (
    "APP_ENV",
    "PORT",
    "HOST",
    "LOG_LEVEL",
    "SESSION_SECRET",
    "SESSION_TTL_SECONDS",
    "AUTH_COOKIE_SECURE",
    "PUBLIC_BASE_URL",
    "SESSION_BACKEND",
    "POSTGRES_DSN",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "DB_AUTO_MIGRATE",
    "LOGIN_MAX_ATTEMPTS",
    "LOGIN_WINDOW_SECONDS",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "FACEBOOK_CLIENT_ID",
    "FACEBOOK_CLIENT_SECRET",
    "TWITTER_CLIENT_ID",
    "TWITTER_CLIENT_SECRET",
    "SMTP_HOST",
    "MAIL_FROM",
    "CONTACT_EMAIL",
)


def _clear_config_caches() -> None:
    load_auth_config.cache_clear()
    load_server_config.cache_clear()
    load_storage_config.cache_clear()
    load_mail_config.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    """Every test starts from an empty portal environment and fresh config caches."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    _clear_config_caches()
    yield
    _clear_config_caches()


class FakeMailer:
    def __init__(self) -> None:
        self.cfg = MailConfig(
            smtp_host=None,
            smtp_port=587,
            smtp_user=None,
            smtp_password=None,
            smtp_starttls=True,
            mail_from="portal@example.com",
            contact_email="owner@example.com",
        )
        self.sent: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def send(self, *, to: str, subject: str, text: str, reply_to: Optional[str] = None) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "text": text, "reply_to": reply_to})


class FakeProvider(IdentityProvider):
    """Identity provider that never leaves the process; tests choose the profile it returns."""

    def __init__(self, name: str, display_name: str) -> None:
        super().__init__(ProviderCredentials(client_id=f"{name}-client", client_secret=f"{name}-secret"))
        self.name = name
        self.display_name = display_name
        self.profile: Optional[ProviderProfile] = None
        self.error: Optional[IdentityProviderError] = None
        self.completed: List[Dict[str, str]] = []

    def authorize_url(self, *, redirect_uri: str, state: str, nonce: str, code_challenge: str) -> str:
        return f"https://{self.name}.example/authorize?state={state}&redirect_uri={redirect_uri}"

    def complete(self, *, redirect_uri: str, code: str, code_verifier: str, nonce: str) -> ProviderProfile:
        self.completed.append({"redirect_uri": redirect_uri, "code": code, "code_verifier": code_verifier})
        if self.error is not None:
            raise self.error
        assert self.profile is not None, "test did not set a profile"
        return self.profile


@pytest.fixture
def auth_cfg() -> AuthConfig:
    return AuthConfig(
        public_base_url="http://testserver",
        session_secret=TEST_SECRET,
        session_ttl_seconds=3600,
        cookie_secure=False,
        providers={
            "google": ProviderCredentials("google-client", "google-secret"),
            "facebook": ProviderCredentials("facebook-client", "facebook-secret"),
        },
        login_max_attempts=5,
        login_window_seconds=300,
    )


@pytest.fixture
def server_cfg() -> ServerConfig:
    return ServerConfig(env="test", host="127.0.0.1", port=3000, log_level="INFO", static_max_age_seconds=3600)


@pytest.fixture
def sessions() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def users() -> MemoryUserStore:
    return MemoryUserStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def providers() -> Dict[str, FakeProvider]:
    return {
        "google": FakeProvider("google", "Google"),
        "facebook": FakeProvider("facebook", "Facebook"),
    }


@pytest.fixture
def app(auth_cfg, server_cfg, sessions, users, providers, mailer):
    return create_app(
        auth_cfg=auth_cfg,
        server_cfg=server_cfg,
        sessions=sessions,
        users=users,
        providers=providers,
        mailer=mailer,
    )


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def alice(users) -> User:
    return create_local_user(users, "alice@example.com", PASSWORD)


@pytest.fixture
def login(client):
    """POST the local login form."""

    def _login(email: str, password: str = PASSWORD):
        return client.post("/login", data={"email": email, "password": password})

    return _login


@pytest.fixture
def session_data(client, auth_cfg, sessions):
    """Read the server-side record behind the client's session cookie."""

    def _read() -> Optional[Dict[str, Any]]:
        sid = decode_session_id(auth_cfg, client.cookies.get("portal_session"))
        return sessions.get(sid) if sid else None

    return _read
