"""Health check endpoints for load balancer and monitoring."""

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check(request: Request) -> HealthResponse:
    from sitemap_audit.core.config import get_settings
    settings = get_settings()

    checks: dict[str, str] = {}

    client = getattr(request.app.state, "http_client", None)
    if client is None:
        checks["http_client"] = "unhealthy: not initialized"
    elif client.is_closed:
        checks["http_client"] = "unhealthy: closed"
    else:
        checks["http_client"] = "healthy"

    overall = "healthy" if all("unhealthy" not in v for v in checks.values()) else "degraded"

    return HealthResponse(
        status=overall,
        version=settings.APP_VERSION,
        checks=checks,
    )


@router.get("/ready", include_in_schema=False)
async def readiness() -> dict:
    """Kubernetes readiness probe."""
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    """Kubernetes liveness probe."""
    return {"alive": True}
