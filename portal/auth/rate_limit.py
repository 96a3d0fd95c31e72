from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Tuple


class RateLimiter:
    """
    Simple in-memory rate limiter for login attempts.

    Tracks login attempts per identifier (normalized email).
    Rate limits after max_attempts within window_seconds.
    Identifiers with no attempts left inside the window are dropped, so the map
    only holds recently seen identifiers.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 300):
        """
        Initialize rate limiter.

        Args:
            max_attempts: Maximum attempts before rate limiting (default: 5)
            window_seconds: Time window in seconds (default: 300 = 5 minutes)
        """
        self._attempts: Dict[str, List[datetime]] = {}
        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._last_sweep = datetime.now()

    def __len__(self) -> int:
        return len(self._attempts)

    def _recent(self, identifier: str, now: datetime) -> List[datetime]:
        return [t for t in self._attempts.get(identifier, ()) if now - t < self._window]

    def _sweep(self, now: datetime) -> None:
        """Drop identifiers whose attempts all fell out of the window (at most once per window)."""
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        for identifier in list(self._attempts):
            recent = self._recent(identifier, now)
            if recent:
                self._attempts[identifier] = recent
            else:
                del self._attempts[identifier]

    def check_and_increment(self, identifier: str) -> Tuple[bool, int]:
        """
        Check if identifier is rate limited and increment attempt counter.

        Returns:
            Tuple of (is_allowed, attempts_remaining)
        """
        now = datetime.now()
        self._sweep(now)

        # Clean old attempts outside the window
        attempts = self._recent(identifier, now)
        if len(attempts) >= self._max_attempts:
            self._attempts[identifier] = attempts
            return False, 0

        attempts.append(now)
        self._attempts[identifier] = attempts
        return True, self._max_attempts - len(attempts)

    def reset(self, identifier: str) -> None:
        """Reset attempts for an identifier (e.g., after successful login)."""
        self._attempts.pop(identifier, None)
