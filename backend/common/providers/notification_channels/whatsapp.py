"""WhatsApp delivery through an HTTP bridge service holding the WhatsApp session."""

import base64
from typing import Optional

import httpx

from common.core.config import settings
from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import NotificationChannelInterface
from .models import ChannelMessage, ChannelType

logger = get_logger(__name__)


class WhatsAppBridgeChannel(NotificationChannelInterface):
    channel_type = ChannelType.WHATSAPP

    def __init__(
        self,
        bridge_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.bridge_url = (bridge_url or settings.whatsapp_bridge_url or "").rstrip("/")
        if not self.bridge_url:
            raise ValueError("WHATSAPP_BRIDGE_URL is required for WhatsApp delivery")
        self.token = token or settings.whatsapp_bridge_token
        self.timeout = timeout

    @trace_span
    async def send(self, endpoint: str, message: ChannelMessage) -> None:
        payload = {"to": endpoint, "message": message.caption}
        if message.attachment is not None:
            payload["media"] = {
                "data": base64.b64encode(message.attachment.content).decode("ascii"),
                "mimeType": message.attachment.mime_type,
                "filename": message.attachment.filename,
            }

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.bridge_url}/send", json=payload, headers=headers
                )
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(
                f"WhatsApp bridge request failed: {e}", self.channel_type
            ) from e

        # Bridge answers 404 for numbers that are not on WhatsApp
        if response.status_code in (404, 410):
            raise EndpointInvalidError(
                f"WhatsApp recipient {endpoint} is not reachable", self.channel_type
            )
        if not response.is_success:
            raise ChannelDeliveryError(
                f"WhatsApp bridge error {response.status_code}: {response.text}",
                self.channel_type,
            )
