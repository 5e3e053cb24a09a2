"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts the incoming correlation header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers
- Clears context after request completion to prevent context leaks

Payment provider deliveries carry their own ``x-request-id``; that value is
reused as the correlation id, so webhook logs line up with provider retries.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from storefront.core.config import settings
from storefront.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and duration to every request/response pair.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
