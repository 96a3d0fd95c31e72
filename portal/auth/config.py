"""
Authentication configuration for the portal.

Design goals:
- Provider credentials are optional; a provider is enabled only when both its
  client id and secret are set.
- Local email/password sign-in is always available.
- The session cookie carries only a signed session id; session data lives in
  the session store.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional


@dataclass(frozen=True)
class ProviderCredentials:
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class AuthConfig:
    # Session configuration
    public_base_url: Optional[str]  # Required for OAuth redirect URIs
    session_secret: Optional[str]  # Required for cookie signing
    session_ttl_seconds: int
    cookie_secure: bool

    # OAuth providers keyed by name (google|facebook|twitter)
    providers: Dict[str, ProviderCredentials] = field(default_factory=dict)

    # Login throttling
    login_max_attempts: int = 5
    login_window_seconds: int = 300


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _load_providers() -> Dict[str, ProviderCredentials]:
    out: Dict[str, ProviderCredentials] = {}
    for name in ("google", "facebook", "twitter"):
        client_id = _env_str(f"{name.upper()}_CLIENT_ID")
        client_secret = _env_str(f"{name.upper()}_CLIENT_SECRET")
        if client_id and client_secret:
            out[name] = ProviderCredentials(client_id=client_id, client_secret=client_secret)
    return out


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    A provider is enabled if <NAME>_CLIENT_ID and <NAME>_CLIENT_SECRET are set.
    """
    public_base_url = _env_str("PUBLIC_BASE_URL")
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    ttl = _env_int("SESSION_TTL_SECONDS", 14 * 24 * 3600)  # two weeks
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        public_base_url=public_base_url,
        session_secret=_env_str("SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        providers=_load_providers(),
        login_max_attempts=max(1, _env_int("LOGIN_MAX_ATTEMPTS", 5)),
        login_window_seconds=max(1, _env_int("LOGIN_WINDOW_SECONDS", 300)),
    )
