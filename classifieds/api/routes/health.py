from fastapi import APIRouter, Depends

from classifieds.api.container import ServiceContainer
from classifieds.api.dependencies import get_container

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)) -> dict:  # type: ignore[type-arg]
    """Liveness + dependency health check."""
    database_ok = await container.gateway.is_healthy()
    broker_ok = await container.event_publisher.is_healthy()

    return {
        "status": "healthy" if database_ok and broker_ok else "degraded",
        "database": "connected" if database_ok else "error",
        "rabbitmq": "connected" if broker_ok else "error",
        "scheduler": "running" if container.scheduler.running else "stopped",
    }
