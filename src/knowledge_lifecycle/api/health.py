"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check - returns ok if the service is running."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(request: Request) -> dict[str, Any]:
    """Readiness check over the stores and Redis."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        return {"status": "starting", "services": {}}

    services: dict[str, str] = {}
    all_ok = True

    for store in (service.vector_store, service.relational_store):
        try:
            await store.stats()
            services[store.name] = "ok"
        except Exception as e:
            services[store.name] = f"error: {type(e).__name__}"
            all_ok = False

    if await service.redis_cache.check_health():
        services["redis"] = "ok"
    else:
        services["redis"] = "error: no response"
        all_ok = False

    return {"status": "ready" if all_ok else "degraded", "services": services}
