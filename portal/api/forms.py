"""Form models for the HTML handlers. Validation messages are shown as flash errors."""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 4

F = TypeVar("F", bound=BaseModel)


def _email(v: str) -> str:
    v = (v or "").strip().lower()
    if not _EMAIL_RE.match(v):
        raise PydanticCustomError("email", "Email is not valid")
    return v


def _new_password(v: str) -> str:
    if len(v or "") < MIN_PASSWORD_LENGTH:
        raise PydanticCustomError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return v


def _not_blank(v: str, label: str) -> str:
    v = (v or "").strip()
    if not v:
        raise PydanticCustomError("blank", "{label} cannot be blank", {"label": label})
    return v


class _Form(BaseModel):
    # Missing fields fall back to "" and must still fail validation.
    model_config = ConfigDict(validate_default=True)


class _ConfirmedPassword(_Form):
    password: str = ""
    confirm_password: str = ""

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _new_password(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "_ConfirmedPassword":
        if self.password != self.confirm_password:
            raise PydanticCustomError("confirm", "Passwords do not match")
        return self


class LoginForm(_Form):
    email: str = ""
    password: str = ""

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("password")
    @classmethod
    def password_present(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError("blank", "Password cannot be blank")
        return v


class SignupForm(_ConfirmedPassword):
    email: str = ""

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _email(v)


class ForgotForm(_Form):
    email: str = ""

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _email(v)


class ResetForm(_ConfirmedPassword):
    pass


class PasswordForm(_ConfirmedPassword):
    pass


class ProfileForm(_Form):
    email: str = ""
    name: Optional[str] = None
    gender: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("name", "gender", "location", "website")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class ContactForm(_Form):
    name: str = ""
    email: str = ""
    message: str = ""

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("name")
    @classmethod
    def name_present(cls, v: str) -> str:
        return _not_blank(v, "Name")

    @field_validator("message")
    @classmethod
    def message_present(cls, v: str) -> str:
        return _not_blank(v, "Message")


def parse_form(model: Type[F], data: Mapping[str, Any]) -> Tuple[Optional[F], List[str]]:
    """Validate submitted form fields. Returns (form, []) or (None, messages)."""
    fields = {k: v for k, v in data.items() if k in model.model_fields and isinstance(v, str)}
    try:
        return model(**fields), []
    except ValidationError as e:
        return None, [str(err["msg"]) for err in e.errors()]
