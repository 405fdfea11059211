from datetime import datetime

from pydantic import BaseModel

from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role


class Subscription(BaseModel):
    """One notification endpoint of one user on one channel."""

    owner_id: str
    channel: ChannelType
    # Push subscription JSON, FCM device token, or chat id / phone number
    endpoint: str
    role: Role
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> str:
        return f"{self.owner_id}|{self.channel.value}"
