"""
Identity provider adapters (OAuth 2.0 authorization code + PKCE).

Each adapter builds the authorization URL and turns a callback `code` into a
verified `ProviderProfile`. Protocol failures surface as `IdentityProviderError`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import jwt
import requests

from portal.auth.config import AuthConfig, ProviderCredentials
from portal.auth.models import ProviderProfile
from portal.auth.oidc import discovery_endpoint, validate_id_token
from portal.errors import IdentityProviderError

logger = logging.getLogger(__name__)

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"
FACEBOOK_GRAPH_URL = "https://graph.facebook.com/v19.0"
TWITTER_API_URL = "https://api.twitter.com/2"


class IdentityProvider:
    name = ""
    display_name = ""
    scope = ""

    def __init__(self, credentials: ProviderCredentials) -> None:
        self.credentials = credentials

    def authorization_endpoint(self) -> str:
        raise NotImplementedError

    def token_endpoint(self) -> str:
        raise NotImplementedError

    def authorize_url(self, *, redirect_uri: str, state: str, nonce: str, code_challenge: str) -> str:
        params = {
            "client_id": self.credentials.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        params.update(self.extra_authorize_params(nonce=nonce))
        return f"{self.authorization_endpoint()}?{urlencode(params)}"

    def extra_authorize_params(self, *, nonce: str) -> Dict[str, str]:
        return {}

    def exchange_code(self, *, redirect_uri: str, code: str, code_verifier: str) -> Dict[str, Any]:
        """Exchange authorization code for tokens."""
        payload = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        r = requests.post(self.token_endpoint(), data=payload, timeout=10)
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            raise IdentityProviderError(self.name, f"token exchange failed (status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise IdentityProviderError(self.name, "invalid token response")
        return data

    def fetch_profile(self, tokens: Dict[str, Any], *, nonce: str) -> ProviderProfile:
        raise NotImplementedError

    def complete(self, *, redirect_uri: str, code: str, code_verifier: str, nonce: str) -> ProviderProfile:
        """Run the code exchange and return the verified profile."""
        try:
            tokens = self.exchange_code(redirect_uri=redirect_uri, code=code, code_verifier=code_verifier)
            return self.fetch_profile(tokens, nonce=nonce)
        except IdentityProviderError:
            raise
        except (requests.RequestException, jwt.PyJWTError, ValueError, KeyError) as e:
            logger.warning("%s sign-in failed: %s", self.name, str(e))
            raise IdentityProviderError(self.name, str(e)) from e


class GoogleProvider(IdentityProvider):
    """Google via OpenID Connect: identity comes from the validated ID token."""

    name = "google"
    display_name = "Google"
    scope = "openid email profile"

    def __init__(self, credentials: ProviderCredentials, discovery_url: str = GOOGLE_DISCOVERY_URL) -> None:
        super().__init__(credentials)
        self.discovery_url = discovery_url

    def authorization_endpoint(self) -> str:
        return discovery_endpoint(self.discovery_url, "authorization_endpoint")

    def token_endpoint(self) -> str:
        return discovery_endpoint(self.discovery_url, "token_endpoint")

    def extra_authorize_params(self, *, nonce: str) -> Dict[str, str]:
        return {"nonce": nonce}

    def fetch_profile(self, tokens: Dict[str, Any], *, nonce: str) -> ProviderProfile:
        id_token = str(tokens.get("id_token") or "").strip()
        if not id_token:
            raise IdentityProviderError(self.name, "missing id_token in token response")
        claims = validate_id_token(
            discovery_url=self.discovery_url,
            client_id=self.credentials.client_id,
            id_token=id_token,
            expected_nonce=nonce,
        )
        return ProviderProfile(
            provider=self.name,
            subject=str(claims["sub"]),
            email=str(claims.get("email") or "").strip().lower() or None,
            name=str(claims.get("name") or "").strip() or None,
            picture=str(claims.get("picture") or "").strip() or None,
            access_token=str(tokens["access_token"]),
            refresh_token=tokens.get("refresh_token") or None,
        )


class FacebookProvider(IdentityProvider):
    name = "facebook"
    display_name = "Facebook"
    scope = "email,public_profile"

    def authorization_endpoint(self) -> str:
        return "https://www.facebook.com/v19.0/dialog/oauth"

    def token_endpoint(self) -> str:
        return f"{FACEBOOK_GRAPH_URL}/oauth/access_token"

    def fetch_profile(self, tokens: Dict[str, Any], *, nonce: str) -> ProviderProfile:
        me = graph_me(str(tokens["access_token"]), fields="id,name,email,gender,location,link,picture.type(large)")
        subject = str(me.get("id") or "")
        if not subject:
            raise IdentityProviderError(self.name, "profile missing id")
        picture = ((me.get("picture") or {}).get("data") or {}).get("url")
        return ProviderProfile(
            provider=self.name,
            subject=subject,
            email=str(me.get("email") or "").strip().lower() or None,
            name=me.get("name") or None,
            gender=me.get("gender") or None,
            location=(me.get("location") or {}).get("name") or None,
            website=me.get("link") or None,
            picture=picture or f"{FACEBOOK_GRAPH_URL}/{subject}/picture?type=large",
            access_token=str(tokens["access_token"]),
        )


class TwitterProvider(IdentityProvider):
    """Twitter (X) OAuth 2.0. The API exposes no email; accounts get `<username>@twitter.com`."""

    name = "twitter"
    display_name = "Twitter"
    scope = "tweet.read users.read offline.access"

    def authorization_endpoint(self) -> str:
        return "https://twitter.com/i/oauth2/authorize"

    def token_endpoint(self) -> str:
        return f"{TWITTER_API_URL}/oauth2/token"

    def exchange_code(self, *, redirect_uri: str, code: str, code_verifier: str) -> Dict[str, Any]:
        # Confidential clients authenticate with HTTP Basic on this endpoint.
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        r = requests.post(
            self.token_endpoint(),
            data=payload,
            auth=(self.credentials.client_id, self.credentials.client_secret),
            timeout=10,
        )
        if r.status_code >= 400:
            raise IdentityProviderError(self.name, f"token exchange failed (status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise IdentityProviderError(self.name, "invalid token response")
        return data

    def fetch_profile(self, tokens: Dict[str, Any], *, nonce: str) -> ProviderProfile:
        access_token = str(tokens["access_token"])
        r = requests.get(
            f"{TWITTER_API_URL}/users/me",
            params={"user.fields": "name,username,location,url,profile_image_url"},
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=10,
        )
        r.raise_for_status()
        data = (r.json() or {}).get("data") or {}
        subject = str(data.get("id") or "")
        username = str(data.get("username") or "")
        if not subject or not username:
            raise IdentityProviderError(self.name, "profile missing id/username")
        return ProviderProfile(
            provider=self.name,
            subject=subject,
            email=f"{username.lower()}@twitter.com",
            name=data.get("name") or None,
            location=data.get("location") or None,
            website=data.get("url") or None,
            picture=data.get("profile_image_url") or None,
            access_token=access_token,
            refresh_token=tokens.get("refresh_token") or None,
        )


def graph_me(access_token: str, *, fields: str) -> Dict[str, Any]:
    """Call the Facebook Graph `/me` endpoint with a user access token."""
    r = requests.get(
        f"{FACEBOOK_GRAPH_URL}/me",
        params={"fields": fields, "access_token": access_token},
        timeout=10,
    )
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid Graph API response")
    return data


_PROVIDER_CLASSES = {
    "google": GoogleProvider,
    "facebook": FacebookProvider,
    "twitter": TwitterProvider,
}


def build_providers(cfg: AuthConfig) -> Dict[str, IdentityProvider]:
    """Instantiate an adapter for every provider with configured credentials."""
    out: Dict[str, IdentityProvider] = {}
    for name, creds in cfg.providers.items():
        cls = _PROVIDER_CLASSES.get(name)
        if cls is not None:
            out[name] = cls(creds)
    return out


def provider_display_name(name: str) -> Optional[str]:
    cls = _PROVIDER_CLASSES.get(name)
    return cls.display_name if cls else None
