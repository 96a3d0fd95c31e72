"""User stores: persistence for principals (local and OAuth-linked accounts)."""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from portal.auth.models import Profile, ProviderToken, User
from portal.errors import DuplicateEmailError, UserStoreError


class UserStore(Protocol):
    def get(self, user_id: int) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def find_by_provider(self, provider: str, subject: str) -> Optional[User]: ...

    def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]: ...

    def create(self, user: User) -> User: ...

    def save(self, user: User) -> User: ...

    def delete(self, user_id: int) -> None: ...


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class MemoryUserStore:
    """In-process user store for development and tests."""

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _copy(self, user: Optional[User]) -> Optional[User]:
        return copy.deepcopy(user) if user is not None else None

    def _email_taken(self, email: str, *, exclude_id: Optional[int]) -> bool:
        return any(u.email == email and u.id != exclude_id for u in self._users.values())

    def get(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(user_id))

    def find_by_email(self, email: str) -> Optional[User]:
        email = normalize_email(email)
        with self._lock:
            for u in self._users.values():
                if u.email == email:
                    return self._copy(u)
        return None

    def find_by_provider(self, provider: str, subject: str) -> Optional[User]:
        with self._lock:
            for u in self._users.values():
                if u.providers.get(provider) == subject:
                    return self._copy(u)
        return None

    def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        if not token:
            return None
        with self._lock:
            for u in self._users.values():
                if (
                    u.password_reset_token == token
                    and u.password_reset_expires is not None
                    and u.password_reset_expires > now
                ):
                    return self._copy(u)
        return None

    def create(self, user: User) -> User:
        user = copy.deepcopy(user)
        user.email = normalize_email(user.email)
        with self._lock:
            if self._email_taken(user.email, exclude_id=None):
                raise DuplicateEmailError(user.email)
            user.id = self._next_id
            self._next_id += 1
            user.created_at = datetime.now(timezone.utc)
            self._users[user.id] = user
            return copy.deepcopy(user)

    def save(self, user: User) -> User:
        if user.id is None:
            raise UserStoreError("cannot save a user without id")
        user = copy.deepcopy(user)
        user.email = normalize_email(user.email)
        with self._lock:
            if user.id not in self._users:
                raise UserStoreError(f"unknown user id {user.id}")
            if self._email_taken(user.email, exclude_id=user.id):
                raise DuplicateEmailError(user.email)
            self._users[user.id] = user
            return copy.deepcopy(user)

    def delete(self, user_id: int) -> None:
        with self._lock:
            self._users.pop(user_id, None)


_USER_COLUMNS = (
    "id, email, password_hash, name, gender, location, website, picture, "
    "providers, tokens, password_reset_token, password_reset_expires, created_at"
)


def _row_to_user(row) -> User:
    (
        user_id,
        email,
        password_hash,
        name,
        gender,
        location,
        website,
        picture,
        providers,
        tokens,
        reset_token,
        reset_expires,
        created_at,
    ) = row
    return User(
        id=user_id,
        email=email,
        password_hash=password_hash,
        profile=Profile(name=name, gender=gender, location=location, website=website, picture=picture),
        providers={str(k): str(v) for k, v in (providers or {}).items()},
        tokens=[ProviderToken.from_dict(t) for t in (tokens or []) if isinstance(t, dict)],
        password_reset_token=reset_token,
        password_reset_expires=reset_expires,
        created_at=created_at,
    )


def _user_params(user: User) -> List[object]:
    from psycopg.types.json import Jsonb

    p = user.profile
    return [
        normalize_email(user.email),
        user.password_hash,
        p.name,
        p.gender,
        p.location,
        p.website,
        p.picture,
        Jsonb(dict(user.providers)),
        Jsonb([t.to_dict() for t in user.tokens]),
        user.password_reset_token,
        user.password_reset_expires,
    ]


class PostgresUserStore:
    """User store backed by the `users` table."""

    def __init__(self, dsn: str, *, connect_timeout: int = 5) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout

    def _connect(self):
        import psycopg

        return psycopg.connect(self._dsn, connect_timeout=self._connect_timeout)

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE {where}", params).fetchone()
        return _row_to_user(row) if row else None

    def get(self, user_id: int) -> Optional[User]:
        return self._fetch_one("id = %s", (user_id,))

    def find_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("email = %s", (normalize_email(email),))

    def find_by_provider(self, provider: str, subject: str) -> Optional[User]:
        from psycopg.types.json import Jsonb

        return self._fetch_one("providers @> %s", (Jsonb({provider: subject}),))

    def find_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        if not token:
            return None
        return self._fetch_one("password_reset_token = %s AND password_reset_expires > %s", (token, now))

    def create(self, user: User) -> User:
        import psycopg

        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO users (email, password_hash, name, gender, location, website, picture,
                                       providers, tokens, password_reset_token, password_reset_expires)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_USER_COLUMNS}
                    """,
                    _user_params(user),
                ).fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateEmailError(normalize_email(user.email)) from e
        if not row:
            raise UserStoreError("Failed to create user")
        return _row_to_user(row)

    def save(self, user: User) -> User:
        import psycopg

        if user.id is None:
            raise UserStoreError("cannot save a user without id")
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    UPDATE users
                    SET email = %s, password_hash = %s, name = %s, gender = %s, location = %s,
                        website = %s, picture = %s, providers = %s, tokens = %s,
                        password_reset_token = %s, password_reset_expires = %s
                    WHERE id = %s
                    RETURNING {_USER_COLUMNS}
                    """,
                    [*_user_params(user), user.id],
                ).fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateEmailError(normalize_email(user.email)) from e
        if not row:
            raise UserStoreError(f"unknown user id {user.id}")
        return _row_to_user(row)

    def delete(self, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM users WHERE id = %s", (user_id,))
