"""Browser push delivery (VAPID) via pywebpush."""

import asyncio
import json
from typing import Optional

from pywebpush import webpush, WebPushException

from common.core.config import settings
from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import NotificationChannelInterface
from .models import ChannelMessage, ChannelType

logger = get_logger(__name__)

# Push services answer 404/410 for expired or unsubscribed endpoints
_GONE_STATUS_CODES = {404, 410}


class WebPushChannel(NotificationChannelInterface):
    channel_type = ChannelType.WEB_PUSH

    def __init__(
        self,
        vapid_private_key: Optional[str] = None,
        vapid_claims_subject: Optional[str] = None,
        ttl_seconds: int = 86400,
    ):
        self.vapid_private_key = vapid_private_key or settings.vapid_private_key
        if not self.vapid_private_key:
            raise ValueError("VAPID_PRIVATE_KEY is required for web push")
        self.vapid_claims_subject = vapid_claims_subject or settings.vapid_claims_subject
        self.ttl_seconds = ttl_seconds

    @trace_span
    async def send(self, endpoint: str, message: ChannelMessage) -> None:
        try:
            subscription_info = json.loads(endpoint)
        except json.JSONDecodeError as e:
            raise EndpointInvalidError(
                "Stored web push subscription is not valid JSON", self.channel_type
            ) from e

        payload = json.dumps(
            {
                "title": message.title,
                "body": message.body,
                "url": message.url,
                "data": message.data,
            },
            ensure_ascii=False,
        )

        try:
            # pywebpush is blocking (requests); keep it off the event loop
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription_info,
                data=payload,
                vapid_private_key=self.vapid_private_key,
                vapid_claims={"sub": self.vapid_claims_subject},
                ttl=self.ttl_seconds,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in _GONE_STATUS_CODES:
                raise EndpointInvalidError(
                    f"Push subscription expired ({status_code})", self.channel_type
                ) from e
            raise ChannelDeliveryError(
                f"Web push failed: {e}", self.channel_type
            ) from e
