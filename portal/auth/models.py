from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ProviderToken:
    kind: str  # google|facebook|twitter
    access_token: str
    refresh_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "access_token": self.access_token, "refresh_token": self.refresh_token}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderToken":
        return cls(
            kind=str(data.get("kind") or ""),
            access_token=str(data.get("access_token") or ""),
            refresh_token=data.get("refresh_token") or None,
        )


@dataclass
class Profile:
    name: Optional[str] = None
    gender: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    picture: Optional[str] = None


@dataclass
class User:
    """Principal stored in the user store (local and/or OAuth linked)."""

    email: str
    id: Optional[int] = None
    password_hash: Optional[str] = None
    profile: Profile = field(default_factory=Profile)
    providers: Dict[str, str] = field(default_factory=dict)  # provider -> subject id
    tokens: List[ProviderToken] = field(default_factory=list)
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def token_for(self, provider: str) -> Optional[ProviderToken]:
        for t in self.tokens:
            if t.kind == provider:
                return t
        return None

    def set_token(self, token: ProviderToken) -> None:
        self.tokens = [t for t in self.tokens if t.kind != token.kind]
        self.tokens.append(token)

    def unlink(self, provider: str) -> None:
        self.providers.pop(provider, None)
        self.tokens = [t for t in self.tokens if t.kind != provider]

    @property
    def display_name(self) -> str:
        return self.profile.name or self.email


@dataclass(frozen=True)
class ProviderProfile:
    """Verified identity returned by an identity provider after the code exchange."""

    provider: str
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    gender: Optional[str] = None
    access_token: str = ""
    refresh_token: Optional[str] = None
