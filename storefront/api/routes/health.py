from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Reports which rate limit backend is active so a silent fallback to the
    in-process counter is visible.

    Returns:
        dict: ``status`` set to "ok" and the active ``rate_limit_backend``.
    """

    return {"status": "ok", "rate_limit_backend": request.app.state.rate_limiter.backend_name}
