from __future__ import annotations

import json
import time
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from portal.auth.config import AuthConfig, ProviderCredentials
from portal.auth.oidc import validate_id_token
from portal.auth.providers import (
    FacebookProvider,
    GoogleProvider,
    TwitterProvider,
    build_providers,
    provider_display_name,
)
from portal.auth.util import pkce_challenge, random_token, sanitize_next_path
from portal.errors import IdentityProviderError

DISCOVERY = {
    "issuer": "https://accounts.google.com",
    "authorization_endpoint": "https://accounts.google.com/o/oauth2/v2/auth",
    "token_endpoint": "https://oauth2.googleapis.com/token",
    "jwks_uri": "https://www.googleapis.com/oauth2/v3/certs",
}
CREDS = ProviderCredentials(client_id="client-123", client_secret="secret-456")


def _response(status: int = 200, body=None) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"status {status}")
    return r


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks(signing_key):
    jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(signing_key.public_key()))
    jwk["kid"] = "key-1"
    return {"keys": [jwk]}


def _id_token(signing_key, **overrides) -> str:
    now = int(time.time())
    claims = {
        "iss": DISCOVERY["issuer"],
        "aud": CREDS.client_id,
        "sub": "google-sub-1",
        "iat": now,
        "exp": now + 300,
        "nonce": "nonce-1",
        "email": "Gina@Example.com",
        "email_verified": True,
        "name": "Gina Google",
    }
    claims.update(overrides)
    return jwt.encode(claims, signing_key, algorithm="RS256", headers={"kid": "key-1"})


def test_pkce_challenge_is_s256_base64url() -> None:
    # RFC 7636 appendix B
    assert pkce_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk") == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
    assert len(random_token(24)) == 32


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, "/"),
        ("", "/"),
        ("/account", "/account"),
        ("//evil.example.com", "/"),
        ("https://evil.example.com", "/"),
        ("/contact\r\nSet-Cookie: x", "/contactSet-Cookie: x"),
    ],
)
def test_sanitize_next_path(raw, expected) -> None:
    assert sanitize_next_path(raw) == expected


def test_build_providers_only_for_configured_credentials() -> None:
    cfg = AuthConfig(
        public_base_url=None,
        session_secret="s",
        session_ttl_seconds=3600,
        cookie_secure=False,
        providers={"twitter": CREDS, "github": CREDS},
    )
    built = build_providers(cfg)
    assert list(built) == ["twitter"]
    assert isinstance(built["twitter"], TwitterProvider)
    assert provider_display_name("facebook") == "Facebook"
    assert provider_display_name("github") is None


def test_google_authorize_url_includes_pkce_and_nonce() -> None:
    with patch("portal.auth.oidc._get_discovery", return_value=DISCOVERY):
        url = GoogleProvider(CREDS).authorize_url(
            redirect_uri="http://localhost:3000/auth/google/callback",
            state="st",
            nonce="nn",
            code_challenge="cc",
        )
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == DISCOVERY["authorization_endpoint"]
    q = {k: v[0] for k, v in parse_qs(parsed.query).items()}
    assert q["client_id"] == "client-123"
    assert q["response_type"] == "code"
    assert q["scope"] == "openid email profile"
    assert q["state"] == "st"
    assert q["nonce"] == "nn"
    assert q["code_challenge"] == "cc"
    assert q["code_challenge_method"] == "S256"


def test_google_complete_validates_id_token(signing_key, jwks) -> None:
    tokens = {"access_token": "at", "refresh_token": "rt", "id_token": _id_token(signing_key)}
    with patch("portal.auth.oidc._get_discovery", return_value=DISCOVERY), patch(
        "portal.auth.oidc._get_jwks", return_value=jwks
    ), patch("portal.auth.providers.requests.post", return_value=_response(200, tokens)) as post:
        profile = GoogleProvider(CREDS).complete(
            redirect_uri="http://localhost:3000/auth/google/callback",
            code="code-1",
            code_verifier="verifier-1",
            nonce="nonce-1",
        )

    assert post.call_args[1]["data"]["code_verifier"] == "verifier-1"
    assert profile.provider == "google"
    assert profile.subject == "google-sub-1"
    assert profile.email == "gina@example.com"
    assert profile.access_token == "at"
    assert profile.refresh_token == "rt"


def test_google_complete_rejects_nonce_mismatch(signing_key, jwks) -> None:
    tokens = {"access_token": "at", "id_token": _id_token(signing_key, nonce="other")}
    with patch("portal.auth.oidc._get_discovery", return_value=DISCOVERY), patch(
        "portal.auth.oidc._get_jwks", return_value=jwks
    ), patch("portal.auth.providers.requests.post", return_value=_response(200, tokens)):
        with pytest.raises(IdentityProviderError):
            GoogleProvider(CREDS).complete(redirect_uri="r", code="c", code_verifier="v", nonce="nonce-1")


def test_validate_id_token_rejects_wrong_audience_and_unverified_email(signing_key, jwks) -> None:
    with patch("portal.auth.oidc._get_discovery", return_value=DISCOVERY), patch(
        "portal.auth.oidc._get_jwks", return_value=jwks
    ):
        with pytest.raises(jwt.InvalidAudienceError):
            validate_id_token(
                discovery_url="d",
                client_id=CREDS.client_id,
                id_token=_id_token(signing_key, aud="someone-else"),
                expected_nonce="nonce-1",
            )
        with pytest.raises(ValueError, match="Email not verified"):
            validate_id_token(
                discovery_url="d",
                client_id=CREDS.client_id,
                id_token=_id_token(signing_key, email_verified=False),
                expected_nonce="nonce-1",
            )


def test_token_exchange_failure_raises_identity_error() -> None:
    with patch("portal.auth.providers.requests.post", return_value=_response(400, {"error": "invalid_grant"})):
        with pytest.raises(IdentityProviderError, match="status=400"):
            FacebookProvider(CREDS).complete(redirect_uri="r", code="c", code_verifier="v", nonce="n")


def test_network_error_raises_identity_error() -> None:
    with patch("portal.auth.providers.requests.post", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(IdentityProviderError):
            FacebookProvider(CREDS).complete(redirect_uri="r", code="c", code_verifier="v", nonce="n")


def test_facebook_profile_from_graph_me() -> None:
    me = {
        "id": "fb-1",
        "name": "Fay Book",
        "email": "Fay@Example.com",
        "gender": "female",
        "location": {"name": "Lisbon"},
        "link": "https://facebook.com/fay",
        "picture": {"data": {"url": "https://cdn.example/fay.jpg"}},
    }
    with patch("portal.auth.providers.requests.post", return_value=_response(200, {"access_token": "fb-at"})), patch(
        "portal.auth.providers.requests.get", return_value=_response(200, me)
    ) as get:
        profile = FacebookProvider(CREDS).complete(redirect_uri="r", code="c", code_verifier="v", nonce="n")

    assert get.call_args[1]["params"]["access_token"] == "fb-at"
    assert profile.subject == "fb-1"
    assert profile.email == "fay@example.com"
    assert profile.location == "Lisbon"
    assert profile.picture == "https://cdn.example/fay.jpg"


def test_twitter_uses_basic_auth_and_synthesizes_email() -> None:
    user = {"data": {"id": "tw-1", "username": "TweetyBird", "name": "Tweety", "location": "Cage"}}
    with patch("portal.auth.providers.requests.post", return_value=_response(200, {"access_token": "tw-at"})) as post, patch(
        "portal.auth.providers.requests.get", return_value=_response(200, user)
    ) as get:
        profile = TwitterProvider(CREDS).complete(redirect_uri="r", code="c", code_verifier="v", nonce="n")

    assert post.call_args[1]["auth"] == ("client-123", "secret-456")
    assert get.call_args[1]["headers"]["Authorization"] == "Bearer tw-at"
    assert profile.subject == "tw-1"
    assert profile.email == "tweetybird@twitter.com"
    assert profile.name == "Tweety"
