from __future__ import annotations

import logging
import traceback
from http import HTTPStatus

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import Response

from portal.api.config import ServerConfig
from portal.api.rendering import render

logger = logging.getLogger(__name__)


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def install_error_handlers(app: FastAPI, cfg: ServerConfig) -> None:
    """
    Outermost error boundary.

    HTTP errors render the error page with their status. Anything else is logged and
    turned into a generic 500; the traceback is shown only outside production.
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        detail = exc.detail if isinstance(exc.detail, str) else _reason(exc.status_code)
        resp = render(
            request,
            "error.html",
            {"status_code": exc.status_code, "title": _reason(exc.status_code), "message": detail, "details": None},
            status_code=exc.status_code,
        )
        if exc.headers:
            resp.headers.update(exc.headers)
        return resp

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> Response:
        logger.exception("%s %s - unhandled error: %s", request.method, request.url.path, str(exc))
        details = None
        if cfg.show_error_details:
            details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return render(
            request,
            "error.html",
            {
                "status_code": 500,
                "title": "Internal Server Error",
                "message": "Something went wrong on our side.",
                "details": details,
            },
            status_code=500,
        )
