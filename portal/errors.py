from __future__ import annotations


class PortalError(Exception):
    """Base class for application errors."""


class SessionStoreError(PortalError):
    """The session store could not be reached or returned an unusable record."""


class UserStoreError(PortalError):
    """The user store failed to read or write a principal."""


class DuplicateEmailError(UserStoreError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Email already registered: {email}")
        self.email = email


class IdentityProviderError(PortalError):
    """OAuth exchange or ID-token verification failed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class MailDeliveryError(PortalError):
    """SMTP delivery failed."""


class SchemaMigrationError(PortalError):
    """A migration file no longer matches the version already applied to the database."""

    def __init__(self, version: str, applied_checksum: str, file_checksum: str) -> None:
        super().__init__(
            f"Migration checksum mismatch for {version}: db={applied_checksum[:12]} file={file_checksum[:12]}"
        )
        self.version = version
