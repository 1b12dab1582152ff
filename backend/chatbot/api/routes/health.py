"""Health check endpoints - liveness and dependency status."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.chatbot.api.deps import get_container
from backend.chatbot.container import Container

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(container: Annotated[Container, Depends(get_container)]) -> dict[str, Any] | JSONResponse:
    """Dependency health check.

    Returns:
        200 with component status if database and cache are reachable
        503 if either fails
    """
    db_ok, db_status = await container.check_db()
    redis_ok, redis_status = await container.check_redis()

    core_ok = db_ok and redis_ok

    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {
            "db": db_status,
            "redis": redis_status,
            "upstream_keys": container.rotator.get_key_count(),
        },
    }

    if not core_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
