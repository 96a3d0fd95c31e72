"""Resolve a verified provider profile into a local account (sign in, link or create)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from portal.auth.models import ProviderProfile, ProviderToken, User
from portal.auth.providers import provider_display_name
from portal.errors import DuplicateEmailError
from portal.storage.users import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountResolution:
    """Either a signed-in user (with an optional info flash) or a refusal with a redirect target."""

    user: Optional[User]
    flash_category: Optional[str] = None
    flash_message: Optional[str] = None
    failure_redirect: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.user is not None


def _fill_profile(user: User, profile: ProviderProfile) -> None:
    p = user.profile
    p.name = p.name or profile.name
    p.gender = p.gender or profile.gender
    p.picture = p.picture or profile.picture
    p.location = p.location or profile.location
    p.website = p.website or profile.website


def _token(profile: ProviderProfile) -> ProviderToken:
    return ProviderToken(kind=profile.provider, access_token=profile.access_token, refresh_token=profile.refresh_token)


def resolve_provider_account(
    users: UserStore,
    profile: ProviderProfile,
    current_user: Optional[User],
) -> AccountResolution:
    """
    Map a provider identity onto an account.

    - Signed in: link the provider to the current account unless another account owns it.
    - Anonymous: sign in the owner of the provider identity; otherwise create an account,
      refusing when the email already belongs to an account that has not linked this provider.
    """
    label = provider_display_name(profile.provider) or profile.provider
    owner = users.find_by_provider(profile.provider, profile.subject)

    if current_user is not None:
        if owner is not None and owner.id != current_user.id:
            return AccountResolution(
                user=None,
                flash_category="errors",
                flash_message=(
                    f"There is already a {label} account that belongs to you. "
                    "Sign in with that account or delete it, then link it with your current account."
                ),
                failure_redirect="/account",
            )
        current_user.providers[profile.provider] = profile.subject
        current_user.set_token(_token(profile))
        _fill_profile(current_user, profile)
        saved = users.save(current_user)
        logger.info("Linked %s to user id=%s", profile.provider, saved.id)
        return AccountResolution(user=saved, flash_category="info", flash_message=f"{label} account has been linked.")

    if owner is not None:
        owner.set_token(_token(profile))
        return AccountResolution(user=users.save(owner))

    if not profile.email:
        return AccountResolution(
            user=None,
            flash_category="errors",
            flash_message=f"Your {label} account did not share an email address.",
            failure_redirect="/login",
        )

    collision = AccountResolution(
        user=None,
        flash_category="errors",
        flash_message=(
            "There is already an account using this email address. "
            f"Sign in to that account and link it with {label} manually from Account Settings."
        ),
        failure_redirect="/login",
    )
    if users.find_by_email(profile.email) is not None:
        return collision

    user = User(email=profile.email, providers={profile.provider: profile.subject}, tokens=[_token(profile)])
    _fill_profile(user, profile)
    try:
        created = users.create(user)
    except DuplicateEmailError:
        # Lost a race with a concurrent signup for the same email.
        return collision
    logger.info("Created user id=%s from %s sign-in", created.id, profile.provider)
    return AccountResolution(user=created)
