from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, Optional, Tuple

from starlette.requests import Request
from starlette.responses import Response

from portal.pipeline.context import RequestContext

logger = logging.getLogger(__name__)

# A step either returns None (continue) or a Response (short-circuit).
Step = Callable[[Request, RequestContext], Awaitable[Optional[Response]]]


class Pipeline:
    """Runs an ordered list of steps over a request context, stopping at the first response."""

    def __init__(self, steps: Iterable[Step]) -> None:
        self.steps: Tuple[Step, ...] = tuple(steps)

    async def run(self, request: Request, ctx: RequestContext) -> Optional[Response]:
        for step in self.steps:
            result = await step(request, ctx)
            if result is not None:
                logger.debug(
                    "%s %s short-circuited by %s (%d)",
                    request.method,
                    request.url.path,
                    getattr(step, "__name__", repr(step)),
                    result.status_code,
                )
                return result
        return None
