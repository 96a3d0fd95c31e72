from __future__ import annotations

import logging

import requests
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from portal.api.rendering import context_of, flash, redirect, render
from portal.auth.providers import graph_me

logger = logging.getLogger(__name__)

GRAPH_PROFILE_FIELDS = "id,name,email,first_name,last_name,gender,link,locale,timezone"


async def get_api(request: Request) -> Response:
    return render(request, "api/index.html", {"title": "API Examples"})


async def get_facebook(request: Request) -> Response:
    """Graph API example. Guarded by login_required and the facebook grant."""
    token = context_of(request).current_user.token_for("facebook")
    try:
        profile = await run_in_threadpool(graph_me, token.access_token, fields=GRAPH_PROFILE_FIELDS)
    except (requests.RequestException, ValueError) as e:
        logger.warning("Graph API /me failed: %s", str(e))
        flash(request, "errors", "Could not load your Facebook profile. Please try again.")
        return redirect("/api")
    return render(request, "api/facebook.html", {"title": "Facebook API", "profile": profile})
