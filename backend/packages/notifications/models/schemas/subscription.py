from datetime import datetime
from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from common.providers.notification_channels.models import ChannelType
from packages.approvals.models.domain.enums import Role


class SubscriptionCreate(BaseModel):
    channel: ChannelType
    # PushSubscription object for web push; token, chat id or phone number otherwise
    endpoint: Union[str, Dict[str, Any]]
    role: Role

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SubscriptionResponse(BaseModel):
    owner_id: str
    channel: ChannelType
    role: Role
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
