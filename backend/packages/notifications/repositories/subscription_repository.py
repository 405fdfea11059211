from typing import List, Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.kv_store.factory import get_kv_store
from common.providers.kv_store.interface import KeyValueStoreInterface
from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role
from packages.notifications.models.domain.subscription import Subscription
from packages.notifications.store_keys import (
    subscription_key,
    subscriptions_by_owner_key,
    subscriptions_by_role_key,
)

logger = get_logger(__name__)


class SubscriptionRepository:
    """Subscription records keyed by (owner, channel) plus role and owner index sets.

    Index sets are candidate lists: a member whose record is gone or whose role
    changed is filtered out on read.
    """

    def __init__(self, store: Optional[KeyValueStoreInterface] = None):
        self.store = store or get_kv_store()

    @trace_span
    async def get(self, owner_id: str, channel: ChannelType) -> Optional[Subscription]:
        record = await self.store.get(subscription_key(owner_id, channel))
        return Subscription.model_validate(record.value) if record else None

    @trace_span
    async def upsert(
        self, subscription: Subscription, previous_role: Optional[Role] = None
    ) -> Subscription:
        await self.store.put(
            subscription_key(subscription.owner_id, subscription.channel),
            subscription.model_dump(mode="json"),
        )
        if previous_role is not None and previous_role != subscription.role:
            await self.store.remove_from_set(
                subscriptions_by_role_key(previous_role), subscription.key
            )
        await self.store.add_to_set(
            subscriptions_by_role_key(subscription.role), subscription.key
        )
        await self.store.add_to_set(
            subscriptions_by_owner_key(subscription.owner_id),
            subscription.channel.value,
        )
        return subscription

    @trace_span
    async def delete(self, owner_id: str, channel: ChannelType) -> Optional[Subscription]:
        """Delete a subscription; returns the removed record, or None if absent."""
        existing = await self.get(owner_id, channel)
        if existing is None:
            return None
        await self.store.delete(subscription_key(owner_id, channel))
        await self.store.remove_from_set(
            subscriptions_by_role_key(existing.role), existing.key
        )
        await self.store.remove_from_set(
            subscriptions_by_owner_key(owner_id), channel.value
        )
        return existing

    @trace_span
    async def list_by_owner(self, owner_id: str) -> List[Subscription]:
        subscriptions = []
        for channel in sorted(
            await self.store.get_set_members(subscriptions_by_owner_key(owner_id))
        ):
            subscription = await self.get(owner_id, ChannelType(channel))
            if subscription:
                subscriptions.append(subscription)
        return subscriptions

    @trace_span
    async def list_by_role(self, role: Role) -> List[Subscription]:
        subscriptions = []
        for member in sorted(
            await self.store.get_set_members(subscriptions_by_role_key(role))
        ):
            owner_id, _, channel = member.rpartition("|")
            subscription = await self.get(owner_id, ChannelType(channel))
            if subscription and subscription.role == role:
                subscriptions.append(subscription)
        return subscriptions
