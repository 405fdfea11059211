import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role
from packages.notifications.models.domain.subscription import Subscription
from packages.notifications.repositories.subscription_repository import (
    SubscriptionRepository,
)

logger = get_logger(__name__)


def normalize_endpoint(
    channel: ChannelType, endpoint: Union[str, Dict[str, Any]]
) -> str:
    """
    Canonical stored form of an endpoint.

    Web push endpoints are the browser PushSubscription (endpoint + keys.p256dh +
    keys.auth) serialised as JSON with sorted keys, so re-registering the same
    subscription produces identical data.

    Raises:
        ValidationError: empty endpoint or malformed push subscription
    """
    if channel == ChannelType.WEB_PUSH:
        if isinstance(endpoint, str):
            try:
                endpoint = json.loads(endpoint)
            except json.JSONDecodeError as e:
                raise ValidationError("Web push endpoint must be a PushSubscription") from e
        keys = endpoint.get("keys") if isinstance(endpoint, dict) else None
        if (
            not isinstance(endpoint, dict)
            or not endpoint.get("endpoint")
            or not isinstance(keys, dict)
            or not keys.get("p256dh")
            or not keys.get("auth")
        ):
            raise ValidationError(
                "Web push subscription needs endpoint, keys.p256dh and keys.auth"
            )
        return json.dumps(
            {
                "endpoint": endpoint["endpoint"],
                "keys": {"p256dh": keys["p256dh"], "auth": keys["auth"]},
            },
            sort_keys=True,
        )

    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValidationError(f"A {channel.value} endpoint is required")
    return endpoint.strip()


class SubscriptionRegistry:
    """Service for notification endpoints per user and channel."""

    def __init__(self, subscription_repo: Optional[SubscriptionRepository] = None):
        self.subscription_repo = subscription_repo or SubscriptionRepository()

    @trace_span
    async def register(
        self,
        owner_id: str,
        channel: ChannelType,
        endpoint: Union[str, Dict[str, Any]],
        role: Role,
    ) -> Subscription:
        """
        Insert or replace the owner's endpoint on a channel.

        Tokens rotate, so an existing (owner, channel) record is replaced in place.
        Registering identical data again writes nothing.
        """
        stored_endpoint = normalize_endpoint(channel, endpoint)
        existing = await self.subscription_repo.get(owner_id, channel)

        if (
            existing
            and existing.endpoint == stored_endpoint
            and existing.role == role
        ):
            logger.debug(f"Subscription {owner_id}/{channel.value} unchanged")
            return existing

        now = datetime.now(timezone.utc)
        subscription = Subscription(
            owner_id=owner_id,
            channel=channel,
            endpoint=stored_endpoint,
            role=role,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        await self.subscription_repo.upsert(
            subscription, previous_role=existing.role if existing else None
        )
        logger.info(
            f"{'Updated' if existing else 'Registered'} {channel.value} subscription "
            f"for {owner_id} as {role.value}"
        )
        return subscription

    # Same operation under its registry name
    upsert = register

    @trace_span
    async def unregister(self, owner_id: str, channel: ChannelType) -> bool:
        """Remove the owner's endpoint on a channel. Returns False if there was none."""
        removed = await self.subscription_repo.delete(owner_id, channel)
        if removed:
            logger.info(f"Removed {channel.value} subscription for {owner_id}")
        return removed is not None

    remove = unregister

    @trace_span
    async def remove_endpoint(
        self, owner_id: str, channel: ChannelType, endpoint: str
    ) -> bool:
        """Remove a subscription reported dead, unless its token rotated meanwhile."""
        current = await self.subscription_repo.get(owner_id, channel)
        if current is None or current.endpoint != endpoint:
            return False
        return await self.remove(owner_id, channel)

    @trace_span
    async def list_by_role(self, role: Role) -> List[Subscription]:
        return await self.subscription_repo.list_by_role(role)

    @trace_span
    async def list_by_owner(self, owner_id: str) -> List[Subscription]:
        return await self.subscription_repo.list_by_owner(owner_id)

    @trace_span
    async def list_by_owners(self, owner_ids: Iterable[str]) -> List[Subscription]:
        subscriptions = []
        for owner_id in sorted(set(owner_ids)):
            subscriptions.extend(await self.subscription_repo.list_by_owner(owner_id))
        return subscriptions


def get_subscription_registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()
