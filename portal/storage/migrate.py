"""
Schema migrations for the Postgres session and user stores.

Files in migrations/ are named `<version>.sql` and applied in version order, each
in its own transaction. Applied versions are recorded with a sha256 of the file so
an edited migration is caught instead of silently diverging.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from portal.errors import SchemaMigrationError
from portal.storage.config import StorageConfig, build_postgres_dsn, load_storage_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Serializes concurrent app instances migrating at startup.
ADVISORY_LOCK_KEY = 731902446118

_CREATE_LEDGER = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version text PRIMARY KEY,
  checksum text NOT NULL,
  applied_at timestamptz NOT NULL DEFAULT now()
)
"""


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    checksum: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        return cls(version=path.stem, path=path, checksum=hashlib.sha256(raw).hexdigest(), sql=raw.decode("utf-8"))


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.is_dir():
        return []
    return [Migration.from_file(p) for p in sorted(directory.glob("*.sql")) if p.is_file()]


def pending_migrations(migrations: Sequence[Migration], applied: Dict[str, str]) -> List[Migration]:
    """
    Return the migrations not yet in `applied` (version -> checksum).

    Raises:
        SchemaMigrationError: If an applied version's file has changed since
    """
    pending: List[Migration] = []
    for m in migrations:
        recorded = applied.get(m.version)
        if recorded is None:
            pending.append(m)
        elif recorded != m.checksum:
            raise SchemaMigrationError(m.version, recorded, m.checksum)
    return pending


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def apply_migrations(*, dsn: str, migrations: Optional[Sequence[Migration]] = None) -> Tuple[int, List[str]]:
    """
    Apply pending migrations under an advisory lock.

    Returns: (applied_count, applied_versions)
    """
    migrations = load_migrations() if migrations is None else list(migrations)
    done: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s)", (ADVISORY_LOCK_KEY,))
        try:
            conn.execute(_CREATE_LEDGER)
            applied = {str(v): str(c) for v, c in conn.execute("SELECT version, checksum FROM schema_migrations")}
            for m in pending_migrations(migrations, applied):
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s)",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s", m.version)
                done.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s)", (ADVISORY_LOCK_KEY,))

    return len(done), done


def maybe_auto_migrate(cfg: Optional[StorageConfig] = None) -> Tuple[bool, str]:
    """
    Migrate at startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Migration failures propagate to the caller.

    Returns: (did_attempt, message)
    """
    cfg = cfg or load_storage_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    n, versions = apply_migrations(dsn=dsn)
    if n:
        return True, f"Applied {n} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
