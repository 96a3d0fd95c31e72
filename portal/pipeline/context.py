from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from portal.auth.models import User
from portal.auth.util import random_token

RETURN_TO_KEY = "returnTo"
USER_ID_KEY = "user_id"
FLASH_KEY = "flash"


class Session:
    """Server-side session record for one request. Written back to the store after the response."""

    def __init__(self, sid: str, data: Optional[Dict[str, Any]] = None, *, is_new: bool = False) -> None:
        self.id = sid
        self.data: Dict[str, Any] = dict(data or {})
        self.is_new = is_new
        self.destroyed = False
        self.regenerated_from: Optional[str] = None

    @classmethod
    def new(cls) -> "Session":
        return cls(random_token(24), is_new=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def pop(self, key: str, default: Any = None) -> Any:
        return self.data.pop(key, default)

    @property
    def return_to(self) -> Optional[str]:
        value = self.data.get(RETURN_TO_KEY)
        return str(value) if value else None

    @return_to.setter
    def return_to(self, path: Optional[str]) -> None:
        if path:
            self.data[RETURN_TO_KEY] = path
        else:
            self.data.pop(RETURN_TO_KEY, None)

    @property
    def user_id(self) -> Optional[int]:
        return self.data.get(USER_ID_KEY)

    def flash(self, category: str, message: str) -> None:
        bucket: Dict[str, List[str]] = self.data.setdefault(FLASH_KEY, {})
        bucket.setdefault(category, []).append(message)

    def pop_flashes(self) -> Dict[str, List[str]]:
        return self.data.pop(FLASH_KEY, None) or {}

    def regenerate(self) -> None:
        """Move the data to a fresh id; the old record is deleted on commit."""
        if self.regenerated_from is None and not self.is_new:
            self.regenerated_from = self.id
        self.id = random_token(24)

    def destroy(self) -> None:
        self.destroyed = True
        self.data.clear()


@dataclass
class RequestContext:
    """Per-request state: the session and the authenticated principal (if any)."""

    session: Session = field(default_factory=Session.new)
    current_user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def login(self, user: User) -> None:
        self.session.regenerate()
        self.session[USER_ID_KEY] = user.id
        self.current_user = user

    def logout(self) -> None:
        self.session.pop(USER_ID_KEY, None)
        self.current_user = None

    def consume_return_to(self, default: str = "/") -> str:
        target = self.session.return_to or default
        self.session.return_to = None
        return target
