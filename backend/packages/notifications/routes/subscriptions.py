from typing import List

from fastapi import APIRouter, Depends, HTTPException

from common.core.http_errors import http_errors
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.notification_channels.models import ChannelType
from packages.auth.dependencies import get_current_user, require_role
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.notifications.models.schemas.subscription import (
    SubscriptionCreate,
    SubscriptionResponse,
)
from packages.notifications.services.subscription_service import (
    SubscriptionRegistry,
    get_subscription_registry,
)

router = APIRouter()
logger = get_logger(__name__)


@router.post("/subscriptions", response_model=SubscriptionResponse)
@trace_span
async def register_subscription(
    request: SubscriptionCreate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    """Register (or rotate) the caller's endpoint on one channel."""
    require_role(current_user, request.role)
    with http_errors():
        subscription = await registry.register(
            current_user.user_id, request.channel, request.endpoint, request.role
        )
    return SubscriptionResponse.model_validate(subscription)


@router.delete("/subscriptions/{channel}", status_code=204)
@trace_span
async def unregister_subscription(
    channel: ChannelType,
    current_user: AuthenticatedUser = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    removed = await registry.unregister(current_user.user_id, channel)
    if not removed:
        raise HTTPException(status_code=404, detail="Subscription not found")


@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    current_user: AuthenticatedUser = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    subscriptions = await registry.list_by_owner(current_user.user_id)
    return [SubscriptionResponse.model_validate(s) for s in subscriptions]
