from fastapi import APIRouter

from common.core.config import settings
from common.core.exceptions import StorageError
from common.core.otel_axiom_exporter import get_logger
from common.providers.kv_store.factory import get_kv_store

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    # No logging - k8s liveness checks hit this every 5-10s
    return {"status": "healthy", "service": settings.app_name}


@router.get("/store")
async def store_check():
    try:
        await get_kv_store().get("health:check")
        return {"status": "healthy", "store": settings.store_provider.value}
    except StorageError as e:
        logger.error(f"Store health check failed: {e}")
        return {"status": "unhealthy", "store": settings.store_provider.value}
