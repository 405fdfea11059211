"""Key generators for subscription records in the key-value store."""

from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role


def subscription_key(owner_id: str, channel: ChannelType) -> str:
    return f"subscription:{owner_id}:{channel.value}"


def subscriptions_by_role_key(role: Role) -> str:
    """Set of "owner|channel" members registered under a role."""
    return f"subscriptions:role:{role.value}"


def subscriptions_by_owner_key(owner_id: str) -> str:
    """Set of channels an owner has registered."""
    return f"subscriptions:owner:{owner_id}"
