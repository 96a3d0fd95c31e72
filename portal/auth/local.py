from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import bcrypt

from portal.auth.models import User
from portal.storage.users import UserStore, normalize_email

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """
    Hash password with bcrypt (cost factor 12).

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Verify password against bcrypt hash with constant-time comparison.

    Accounts created through an OAuth provider have no hash and never verify.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Invalid hash format
        return False


@dataclass(frozen=True)
class LocalAuthResult:
    user: Optional[User]
    error: Optional[str] = None


def authenticate_local(users: UserStore, email: str, password: str) -> LocalAuthResult:
    """
    Authenticate a user with email/password.

    Returns a result carrying either the user or the message to show on the login form.
    """
    email = normalize_email(email)
    user = users.find_by_email(email)
    if user is None:
        return LocalAuthResult(user=None, error=f"Email {email} not found.")
    if not verify_password(password, user.password_hash):
        logger.info("Local login rejected for user id=%s", user.id)
        return LocalAuthResult(user=None, error="Invalid email or password.")
    return LocalAuthResult(user=user)


def create_local_user(users: UserStore, email: str, password: str, name: Optional[str] = None) -> User:
    """
    Create a new email/password account.

    Raises:
        DuplicateEmailError: If the email is already registered
    """
    user = User(email=normalize_email(email), password_hash=hash_password(password))
    if name:
        user.profile.name = name
    return users.create(user)
