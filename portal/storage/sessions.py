"""Session stores: server-side session records keyed by session id."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple

from portal.errors import SessionStoreError

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, sid: str) -> Optional[Dict[str, Any]]: ...

    def set(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None: ...

    def destroy(self, sid: str) -> None: ...

    def ping(self) -> None: ...


@dataclass
class MemorySessionStore:
    """In-process session store for development and tests. Records are lost on restart."""

    _records: Dict[str, Tuple[float, str]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rec = self._records.get(sid)
            if rec is None:
                return None
            expires_at, raw = rec
            if expires_at <= time.time():
                del self._records[sid]
                return None
        # Stored as JSON so callers never share mutable state across requests.
        return json.loads(raw)

    def set(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        raw = json.dumps(data, separators=(",", ":"), sort_keys=True)
        now = time.time()
        with self._lock:
            self._purge_expired(now)
            self._records[sid] = (now + ttl_seconds, raw)

    def _purge_expired(self, now: float) -> None:
        # Records of clients that never come back are only reclaimed here.
        expired = [sid for sid, (expires_at, _) in self._records.items() if expires_at <= now]
        for sid in expired:
            del self._records[sid]

    def destroy(self, sid: str) -> None:
        with self._lock:
            self._records.pop(sid, None)

    def ping(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._records)


class PostgresSessionStore:
    """
    Session store backed by the `sessions` table.

    Writes are upserts, so concurrent requests for the same session resolve as
    last-writer-wins.
    """

    def __init__(self, dsn: str, *, connect_timeout: int = 5) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout

    def _connect(self):
        import psycopg

        return psycopg.connect(self._dsn, connect_timeout=self._connect_timeout)

    def get(self, sid: str) -> Optional[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT data FROM sessions WHERE sid = %s AND expires_at > now()",
                    (sid,),
                ).fetchone()
        except Exception as e:
            raise SessionStoreError(f"session lookup failed: {e}") from e
        if not row:
            return None
        data = row[0]
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, dict):
            logger.warning("Discarding malformed session record (sid=%s...)", sid[:8])
            return None
        return data

    def set(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        from psycopg.types.json import Jsonb

        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO sessions (sid, data, expires_at)
                    VALUES (%s, %s, now() + make_interval(secs => %s))
                    ON CONFLICT (sid) DO UPDATE
                    SET data = EXCLUDED.data, expires_at = EXCLUDED.expires_at
                    """,
                    (sid, Jsonb(data), ttl_seconds),
                )
        except Exception as e:
            raise SessionStoreError(f"session write failed: {e}") from e

    def destroy(self, sid: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM sessions WHERE sid = %s", (sid,))
        except Exception as e:
            raise SessionStoreError(f"session delete failed: {e}") from e

    def ping(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1 FROM sessions LIMIT 1")
        except Exception as e:
            raise SessionStoreError(f"session store unreachable: {e}") from e

    def purge_expired(self) -> int:
        """Delete expired records. Returns the number removed."""
        try:
            with self._connect() as conn:
                cur = conn.execute("DELETE FROM sessions WHERE expires_at <= now()")
                return cur.rowcount or 0
        except Exception as e:
            raise SessionStoreError(f"session purge failed: {e}") from e
