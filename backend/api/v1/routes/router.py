from fastapi import APIRouter, Depends

from api.v1.routes import (
    health,
)
from packages.approvals.routes import documents
from packages.notifications.routes import subscriptions
from packages.auth.dependencies import get_current_user

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Protected routes (require an authenticated caller)
api_router.include_router(
    documents.router,
    tags=["documents"],
    dependencies=[Depends(get_current_user)],
)
api_router.include_router(
    subscriptions.router,
    tags=["subscriptions"],
    dependencies=[Depends(get_current_user)],
)
