from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

from portal.api.rendering import render


async def index(request: Request) -> Response:
    return render(request, "home.html", {"title": "Home"})
