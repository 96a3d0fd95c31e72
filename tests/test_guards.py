from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from portal.auth.models import ProviderToken, User
from portal.authz.guards import login_required, provider_required
from portal.pipeline.context import RequestContext


def _run(step, ctx: RequestContext):
    request = MagicMock()
    request.url.path = "/api/facebook"
    return asyncio.run(step(request, ctx))


def test_login_required_redirects_anonymous() -> None:
    resp = _run(login_required, RequestContext())
    assert resp is not None
    assert resp.status_code == 302
    assert resp.headers["location"] == "/login"


def test_login_required_passes_authenticated() -> None:
    ctx = RequestContext(current_user=User(email="a@example.com", id=1))
    assert _run(login_required, ctx) is None


def test_provider_required_sends_user_to_provider_sign_in() -> None:
    ctx = RequestContext(current_user=User(email="a@example.com", id=1))
    resp = _run(provider_required("facebook"), ctx)
    assert resp is not None
    assert resp.status_code == 302
    assert resp.headers["location"] == "/auth/facebook"


def test_provider_required_passes_with_token() -> None:
    user = User(email="a@example.com", id=1, tokens=[ProviderToken(kind="facebook", access_token="tok")])
    assert _run(provider_required("facebook"), RequestContext(current_user=user)) is None


def test_provider_required_guard_is_named_for_logs() -> None:
    assert provider_required("twitter").__name__ == "provider_required[twitter]"


@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/account"),
        ("POST", "/account/profile"),
        ("POST", "/account/password"),
        ("POST", "/account/delete"),
        ("GET", "/account/unlink/google"),
        ("GET", "/api/facebook"),
    ],
)
def test_guarded_routes_redirect_anonymous_to_login(client, method: str, path: str) -> None:
    r = client.request(method, path)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_api_facebook_without_grant_redirects_to_provider(client, alice, login) -> None:
    login(alice.email)
    r = client.get("/api/facebook")
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/facebook"


def test_api_facebook_with_grant_renders_profile(client, users, alice, login) -> None:
    alice.providers["facebook"] = "fb-1"
    alice.set_token(ProviderToken(kind="facebook", access_token="fb-token"))
    users.save(alice)
    login(alice.email)

    with patch("portal.handlers.api.graph_me") as mock_me:
        mock_me.return_value = {"id": "fb-1", "name": "Alice Liddell", "email": "alice@example.com"}
        r = client.get("/api/facebook")

    assert r.status_code == 200
    assert "Alice Liddell" in r.text
    mock_me.assert_called_once()
    assert mock_me.call_args[0][0] == "fb-token"


def test_api_facebook_graph_failure_flashes_error(client, users, alice, login) -> None:
    alice.set_token(ProviderToken(kind="facebook", access_token="fb-token"))
    users.save(alice)
    login(alice.email)

    with patch("portal.handlers.api.graph_me", side_effect=requests.ConnectionError("down")):
        r = client.get("/api/facebook")

    assert r.status_code == 302
    assert r.headers["location"] == "/api"
    assert "Could not load your Facebook profile" in client.get("/api").text
