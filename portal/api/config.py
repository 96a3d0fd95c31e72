from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class ServerConfig:
    env: str  # development|test|production
    host: str
    port: int
    log_level: str
    static_max_age_seconds: int

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def show_error_details(self) -> bool:
        """Tracebacks in error pages; never in production."""
        return not self.is_production


@lru_cache(maxsize=1)
def load_server_config() -> ServerConfig:
    port_raw = (os.getenv("PORT") or "").strip() or "3000"
    try:
        port = int(port_raw)
    except ValueError:
        port = 3000
    return ServerConfig(
        env=(os.getenv("APP_ENV") or "").strip().lower() or "development",
        host=(os.getenv("HOST") or "").strip() or "0.0.0.0",
        port=port,
        log_level=(os.getenv("LOG_LEVEL") or "info").strip().upper(),
        static_max_age_seconds=365 * 24 * 3600,
    )
