"""
OAuth sign-in for the configured identity providers.

`/auth/{provider}` stores state, nonce and the PKCE verifier in the server-side session
and redirects to the provider. The callback checks them, exchanges the code, then
signs in, links or creates the account.
"""
from __future__ import annotations

import logging

import requests
from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from portal.api.rendering import context_of, flash, redirect
from portal.auth.accounts import resolve_provider_account
from portal.auth.providers import IdentityProvider
from portal.auth.util import pkce_challenge, random_token, sanitize_next_path
from portal.errors import IdentityProviderError
from portal.services import services_of

logger = logging.getLogger(__name__)

OAUTH_SESSION_KEY = "oauth"


def _provider(request: Request) -> IdentityProvider:
    provider = services_of(request).providers.get(request.path_params["provider"])
    if provider is None:
        raise HTTPException(status_code=404, detail="Unknown sign-in provider")
    return provider


def _redirect_uri(request: Request, provider: IdentityProvider) -> str:
    base = services_of(request).auth.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/auth/{provider.name}/callback"


def _failed(request: Request, provider: IdentityProvider) -> Response:
    flash(request, "errors", f"{provider.display_name} sign-in failed. Please try again.")
    return redirect("/login")


async def authorize(request: Request) -> Response:
    provider = _provider(request)
    ctx = context_of(request)

    state = random_token(24)
    nonce = random_token(24)
    verifier = random_token(48)
    ctx.session[OAUTH_SESSION_KEY] = {
        "provider": provider.name,
        "state": state,
        "nonce": nonce,
        "verifier": verifier,
    }
    try:
        url = await run_in_threadpool(
            provider.authorize_url,
            redirect_uri=_redirect_uri(request, provider),
            state=state,
            nonce=nonce,
            code_challenge=pkce_challenge(verifier),
        )
    except (requests.RequestException, ValueError) as e:
        logger.warning("Could not build %s authorization URL: %s", provider.name, str(e))
        ctx.session.pop(OAUTH_SESSION_KEY, None)
        return _failed(request, provider)

    resp = redirect(url)
    resp.headers["Cache-Control"] = "no-store"
    return resp


async def callback(request: Request) -> Response:
    provider = _provider(request)
    ctx = context_of(request)
    pending = ctx.session.pop(OAUTH_SESSION_KEY, None) or {}
    params = request.query_params

    if params.get("error"):
        logger.info("%s sign-in denied: %s", provider.name, params.get("error"))
        return _failed(request, provider)
    if pending.get("provider") != provider.name or not params.get("state") or params.get("state") != pending.get("state"):
        logger.warning("%s callback with missing or mismatched state", provider.name)
        return _failed(request, provider)
    code = params.get("code")
    if not code:
        return _failed(request, provider)

    try:
        profile = await run_in_threadpool(
            provider.complete,
            redirect_uri=_redirect_uri(request, provider),
            code=code,
            code_verifier=str(pending.get("verifier") or ""),
            nonce=str(pending.get("nonce") or ""),
        )
    except IdentityProviderError as e:
        logger.warning("%s sign-in failed: %s", provider.name, str(e))
        return _failed(request, provider)

    resolution = await run_in_threadpool(
        resolve_provider_account, services_of(request).users, profile, ctx.current_user
    )
    if not resolution.ok:
        flash(request, resolution.flash_category or "errors", resolution.flash_message or "Sign-in failed.")
        return redirect(resolution.failure_redirect or "/login")
    if resolution.flash_message:
        flash(request, resolution.flash_category or "info", resolution.flash_message)

    if ctx.current_user is not None and ctx.current_user.id == resolution.user.id:
        ctx.current_user = resolution.user
    else:
        ctx.login(resolution.user)
    return redirect(sanitize_next_path(ctx.consume_return_to()))
