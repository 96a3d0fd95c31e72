"""
Application factory and process entry point.

Middleware order (outermost first): gzip, request log, security headers, session
pipeline. Routes come from the static table; anything else falls through to the
public/ static files.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Tuple

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request

from portal.api.config import ServerConfig, load_server_config
from portal.api.errors import install_error_handlers
from portal.api.rendering import PUBLIC_DIR
from portal.api.routes import mount_routes
from portal.auth.config import AuthConfig, load_auth_config
from portal.auth.providers import IdentityProvider, build_providers
from portal.auth.rate_limit import RateLimiter
from portal.mail import Mailer, load_mail_config
from portal.pipeline.middleware import SessionPipelineMiddleware
from portal.services import Services
from portal.storage.config import StorageConfig, build_postgres_dsn, load_storage_config
from portal.storage.migrate import maybe_auto_migrate
from portal.storage.sessions import MemorySessionStore, PostgresSessionStore, SessionStore
from portal.storage.users import MemoryUserStore, PostgresUserStore, UserStore

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "1; mode=block",
    "X-Content-Type-Options": "nosniff",
}


class CachedStaticFiles(StaticFiles):
    """StaticFiles with a long-lived Cache-Control header."""

    def __init__(self, *args, max_age: int, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_age = max_age

    def file_response(self, *args, **kwargs):
        resp = super().file_response(*args, **kwargs)
        resp.headers.setdefault("Cache-Control", f"public, max-age={self.max_age}")
        return resp


def build_stores(cfg: StorageConfig) -> Tuple[SessionStore, UserStore]:
    if cfg.backend == "postgres":
        dsn = build_postgres_dsn(cfg)
        if not dsn:
            raise RuntimeError("SESSION_BACKEND=postgres but POSTGRES_DSN / POSTGRES_HOST is not set")
        return PostgresSessionStore(dsn), PostgresUserStore(dsn)
    logger.warning("Using in-memory session and user stores; data is lost on restart")
    return MemorySessionStore(), MemoryUserStore()


async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
    return response


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def create_app(
    *,
    auth_cfg: Optional[AuthConfig] = None,
    server_cfg: Optional[ServerConfig] = None,
    sessions: Optional[SessionStore] = None,
    users: Optional[UserStore] = None,
    providers: Optional[Dict[str, IdentityProvider]] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """
    Build the application. Collaborators not passed in are built from the environment.

    Raises:
        RuntimeError: If SESSION_SECRET is unset or the configured store backend is incomplete
    """
    auth_cfg = auth_cfg or load_auth_config()
    server_cfg = server_cfg or load_server_config()
    if not auth_cfg.session_secret:
        raise RuntimeError("SESSION_SECRET is required")

    manage_schema = sessions is None or users is None
    if manage_schema:
        default_sessions, default_users = build_stores(load_storage_config())
        sessions = sessions or default_sessions
        users = users or default_users

    services = Services(
        auth=auth_cfg,
        server=server_cfg,
        sessions=sessions,
        users=users,
        providers=build_providers(auth_cfg) if providers is None else providers,
        mailer=mailer or Mailer(load_mail_config()),
        login_limiter=RateLimiter(auth_cfg.login_max_attempts, auth_cfg.login_window_seconds),
    )

    app = FastAPI(title="Portal", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.services = services

    install_error_handlers(app, server_cfg)
    mount_routes(app)
    app.mount(
        "/",
        CachedStaticFiles(directory=str(PUBLIC_DIR), max_age=server_cfg.static_max_age_seconds),
        name="public",
    )

    # add_middleware/middleware() wrap the current stack, so the last one added runs first.
    app.add_middleware(SessionPipelineMiddleware)
    app.middleware("http")(security_headers)
    app.middleware("http")(log_requests)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.on_event("startup")
    async def _startup_check_stores() -> None:
        """
        Fail fast if the session store is unreachable.
        """
        if manage_schema:
            _, msg = await run_in_threadpool(maybe_auto_migrate)
            logger.info("Schema migrations: %s", msg)
        await run_in_threadpool(services.sessions.ping)
        logger.info(
            "Session store OK (%s); providers enabled: %s",
            type(services.sessions).__name__,
            ", ".join(sorted(services.providers)) or "none",
        )

    return app


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    cfg = load_server_config()

    # Configure logging for the application
    log_level = cfg.log_level
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    host = host or cfg.host
    port = port or cfg.port
    logger.info("Starting portal on %s:%d (env=%s, log_level=%s)", host, port, cfg.env, log_level)
    uvicorn.run(create_app(server_cfg=cfg), host=host, port=port, log_level=uvicorn_log_level)
