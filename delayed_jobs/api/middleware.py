"""
Request metrics middleware.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from delayed_jobs.observability.metrics import get_metrics


async def record_request_metrics(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """
    Count requests and observe their latency.

    The route template, not the raw path, is used as the endpoint label so
    job ids do not explode label cardinality.
    """
    started = time.perf_counter()
    response = await call_next(request)

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    get_metrics().record_api_request(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
        duration_seconds=time.perf_counter() - started,
    )
    return response
