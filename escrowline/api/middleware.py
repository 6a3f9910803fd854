import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from escrowline.common.logging import get_logger

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"


def route_group(path: str) -> str:
    """Which caller a path belongs to: the scheduler, the marketplace backend, or anyone."""
    if "/cron/" in path:
        return "cron"
    if "/internal/" in path:
        return "internal"
    return "public"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs one access line per response.

    A caller-supplied ``X-Request-ID`` is kept so a scheduler run can be
    traced through the engine logs it triggers.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        group = route_group(request.url.path)
        request.state.request_id = request_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={"request_id": request_id, "route_group": group},
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
