"""
Local account handlers: login/logout, signup, password reset and account settings.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from portal.api.forms import (
    ForgotForm,
    LoginForm,
    PasswordForm,
    ProfileForm,
    ResetForm,
    SignupForm,
    parse_form,
)
from portal.api.rendering import context_of, flash, redirect, render
from portal.auth.local import authenticate_local, create_local_user, hash_password
from portal.auth.providers import provider_display_name
from portal.auth.util import random_token, sanitize_next_path
from portal.errors import DuplicateEmailError, MailDeliveryError
from portal.services import services_of

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)


def _flash_all(request: Request, messages: List[str]) -> None:
    for msg in messages:
        flash(request, "errors", msg)


def _base_url(request: Request) -> str:
    configured = services_of(request).auth.public_base_url
    return (configured or str(request.base_url)).rstrip("/")


def _provider_links(request: Request) -> List[Dict[str, Any]]:
    user = context_of(request).current_user
    out = []
    for name in services_of(request).providers:
        out.append(
            {
                "name": name,
                "label": provider_display_name(name) or name,
                "linked": bool(user and name in user.providers),
            }
        )
    return out


# --- sign in / sign out ---


async def get_login(request: Request) -> Response:
    if context_of(request).is_authenticated:
        return redirect("/")
    return render(request, "account/login.html", {"title": "Login", "providers": _provider_links(request)})


async def post_login(request: Request) -> Response:
    form, errors = parse_form(LoginForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect("/login")

    services = services_of(request)
    allowed, _ = services.login_limiter.check_and_increment(form.email)
    if not allowed:
        logger.warning("Login rate limit hit for %s", form.email)
        flash(request, "errors", "Too many failed login attempts. Please try again later.")
        return redirect("/login")

    result = await run_in_threadpool(authenticate_local, services.users, form.email, form.password)
    if result.user is None:
        flash(request, "errors", result.error or "Invalid email or password.")
        return redirect("/login")

    services.login_limiter.reset(form.email)
    ctx = context_of(request)
    ctx.login(result.user)
    flash(request, "success", "Success! You are logged in.")
    return redirect(sanitize_next_path(ctx.consume_return_to()))


async def logout(request: Request) -> Response:
    ctx = context_of(request)
    ctx.current_user = None
    ctx.session.destroy()
    return redirect("/")


# --- signup ---


async def get_signup(request: Request) -> Response:
    if context_of(request).is_authenticated:
        return redirect("/")
    return render(request, "account/signup.html", {"title": "Create Account"})


async def post_signup(request: Request) -> Response:
    form, errors = parse_form(SignupForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect("/signup")

    try:
        user = await run_in_threadpool(create_local_user, services_of(request).users, form.email, form.password)
    except DuplicateEmailError:
        flash(request, "errors", "Account with that email address already exists.")
        return redirect("/signup")

    context_of(request).login(user)
    return redirect("/")


# --- password reset ---


async def get_forgot(request: Request) -> Response:
    if context_of(request).is_authenticated:
        return redirect("/")
    return render(request, "account/forgot.html", {"title": "Forgot Password"})


async def post_forgot(request: Request) -> Response:
    form, errors = parse_form(ForgotForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect("/forgot")

    services = services_of(request)
    user = await run_in_threadpool(services.users.find_by_email, form.email)
    if user is None:
        flash(request, "errors", "Account with that email address does not exist.")
        return redirect("/forgot")

    user.password_reset_token = random_token(24)
    user.password_reset_expires = datetime.now(timezone.utc) + RESET_TOKEN_TTL
    await run_in_threadpool(services.users.save, user)

    link = f"{_base_url(request)}/reset/{user.password_reset_token}"
    text = (
        "You are receiving this email because you (or someone else) have requested "
        "the reset of the password for your account.\n\n"
        "Please click on the following link, or paste this into your browser to complete the process:\n\n"
        f"{link}\n\n"
        "If you did not request this, please ignore this email and your password will remain unchanged.\n"
    )
    try:
        await run_in_threadpool(services.mailer.send, to=user.email, subject="Reset your password", text=text)
    except MailDeliveryError:
        flash(request, "errors", "We could not send the reset email. Please try again later.")
        return redirect("/forgot")

    flash(request, "info", f"An e-mail has been sent to {user.email} with further instructions.")
    return redirect("/forgot")


async def get_reset(request: Request) -> Response:
    if context_of(request).is_authenticated:
        return redirect("/")
    token = request.path_params["token"]
    user = await run_in_threadpool(services_of(request).users.find_by_reset_token, token, datetime.now(timezone.utc))
    if user is None:
        flash(request, "errors", "Password reset token is invalid or has expired.")
        return redirect("/forgot")
    return render(request, "account/reset.html", {"title": "Password Reset", "token": token})


async def post_reset(request: Request) -> Response:
    token = request.path_params["token"]
    back = f"/reset/{token}"
    form, errors = parse_form(ResetForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect(back)

    services = services_of(request)
    user = await run_in_threadpool(services.users.find_by_reset_token, token, datetime.now(timezone.utc))
    if user is None:
        flash(request, "errors", "Password reset token is invalid or has expired.")
        return redirect(back)

    user.password_hash = await run_in_threadpool(hash_password, form.password)
    user.password_reset_token = None
    user.password_reset_expires = None
    user = await run_in_threadpool(services.users.save, user)
    context_of(request).login(user)

    text = f"Hello,\n\nThis is a confirmation that the password for your account {user.email} has just been changed.\n"
    try:
        await run_in_threadpool(
            services.mailer.send, to=user.email, subject="Your password has been changed", text=text
        )
    except MailDeliveryError:
        logger.warning("Password changed for user id=%s but confirmation mail failed", user.id)

    flash(request, "success", "Success! Your password has been changed.")
    return redirect("/")


# --- account settings (login_required) ---


async def get_account(request: Request) -> Response:
    return render(
        request,
        "account/profile.html",
        {"title": "Account Management", "providers": _provider_links(request)},
    )


async def post_update_profile(request: Request) -> Response:
    form, errors = parse_form(ProfileForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect("/account")

    user = context_of(request).current_user
    user.email = form.email
    user.profile.name = form.name
    user.profile.gender = form.gender
    user.profile.location = form.location
    user.profile.website = form.website
    try:
        await run_in_threadpool(services_of(request).users.save, user)
    except DuplicateEmailError:
        flash(request, "errors", "The email address you have entered is already associated with an account.")
        return redirect("/account")

    flash(request, "success", "Profile information has been updated.")
    return redirect("/account")


async def post_update_password(request: Request) -> Response:
    form, errors = parse_form(PasswordForm, await request.form())
    if form is None:
        _flash_all(request, errors)
        return redirect("/account")

    user = context_of(request).current_user
    user.password_hash = await run_in_threadpool(hash_password, form.password)
    await run_in_threadpool(services_of(request).users.save, user)
    flash(request, "success", "Password has been changed.")
    return redirect("/account")


async def post_delete_account(request: Request) -> Response:
    ctx = context_of(request)
    await run_in_threadpool(services_of(request).users.delete, ctx.current_user.id)
    logger.info("Deleted user id=%s", ctx.current_user.id)
    # Log out but keep the session so the flash survives the redirect.
    ctx.logout()
    flash(request, "info", "Your account has been deleted.")
    return redirect("/")


async def get_oauth_unlink(request: Request) -> Response:
    provider = request.path_params["provider"]
    label = provider_display_name(provider) or provider
    user = context_of(request).current_user

    if provider not in user.providers and user.token_for(provider) is None:
        flash(request, "errors", f"Your account is not linked with {label}.")
        return redirect("/account")

    other_logins = [p for p in user.providers if p != provider]
    if not user.password_hash and not other_logins:
        flash(
            request,
            "errors",
            f"The {label} account cannot be unlinked without another form of login enabled. "
            "Please link another account or set a password first.",
        )
        return redirect("/account")

    user.unlink(provider)
    await run_in_threadpool(services_of(request).users.save, user)
    flash(request, "info", f"{label} account has been unlinked.")
    return redirect("/account")
