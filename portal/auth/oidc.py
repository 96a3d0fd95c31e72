"""OpenID Connect helpers: discovery, JWKS and ID-token validation."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Tuple

import jwt  # PyJWT
import requests

_discovery_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
_jwks_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

_CACHE_TTL_SECONDS = 3600


def _get_discovery(discovery_url: str) -> Dict[str, Any]:
    """
    Fetch OIDC discovery document from provider.
    Caches result for 1 hour per discovery URL.
    """
    ts, cached = _discovery_cache.get(discovery_url, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    r = requests.get(discovery_url, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid OIDC discovery document")
    _discovery_cache[discovery_url] = (now, data)
    return data


def _get_jwks(jwks_uri: str) -> Dict[str, Any]:
    """
    Fetch JWKS (JSON Web Key Set) from provider.
    Caches result for 1 hour per JWKS URI.
    """
    ts, cached = _jwks_cache.get(jwks_uri, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    r = requests.get(jwks_uri, timeout=10)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid JWKS")
    _jwks_cache[jwks_uri] = (now, data)
    return data


def discovery_endpoint(discovery_url: str, key: str) -> str:
    disc = _get_discovery(discovery_url)
    value = str(disc.get(key) or "")
    if not value:
        raise ValueError(f"OIDC discovery missing {key}")
    return value


def validate_id_token(
    *,
    discovery_url: str,
    client_id: str,
    id_token: str,
    expected_nonce: str,
) -> Dict[str, Any]:
    """
    Validate ID token from OIDC provider.
    - Verifies JWT signature using provider's public keys
    - Validates issuer, audience, nonce
    - Checks email verification status
    """
    disc = _get_discovery(discovery_url)
    issuer = str(disc.get("issuer") or "")
    jwks_uri = str(disc.get("jwks_uri") or "")
    if not issuer or not jwks_uri:
        raise ValueError("OIDC discovery missing issuer/jwks_uri")

    hdr = jwt.get_unverified_header(id_token)
    kid = str(hdr.get("kid") or "")
    if not kid:
        raise ValueError("ID token missing kid")

    jwks = _get_jwks(jwks_uri)
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        raise ValueError("Invalid JWKS keys")

    jwk = None
    for k in keys:
        if isinstance(k, dict) and str(k.get("kid") or "") == kid:
            jwk = k
            break
    if jwk is None:
        raise ValueError("Unknown signing key (kid)")

    key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))

    claims = jwt.decode(
        id_token,
        key=key,
        algorithms=["RS256"],
        audience=client_id,
        issuer=issuer,
        options={
            "require": ["exp", "iat", "iss", "aud", "sub"],
        },
    )
    if not isinstance(claims, dict):
        raise ValueError("Invalid ID token claims")

    nonce = str(claims.get("nonce") or "")
    if not nonce or nonce != expected_nonce:
        raise ValueError("Nonce mismatch")

    # Some providers may not include email_verified claim; treat as optional
    email_verified = claims.get("email_verified")
    if email_verified is not None and email_verified is not True:
        raise ValueError("Email not verified")

    return claims
