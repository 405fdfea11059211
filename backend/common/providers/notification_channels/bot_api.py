"""Chat bridges speaking the Telegram Bot API (Telegram itself and Bale)."""

from typing import Optional

import httpx

from common.core.config import settings
from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import NotificationChannelInterface
from .models import ChannelMessage, ChannelType

logger = get_logger(__name__)

# Bot API caps photo captions at 1024 characters
MAX_PHOTO_CAPTION_LENGTH = 1024

_INVALID_CHAT_MARKERS = (
    "chat not found",
    "bot was blocked",
    "user is deactivated",
    "bot was kicked",
)


class BotApiChannel(NotificationChannelInterface):
    """Sends sendPhoto (with artifact) or sendMessage (caption only) to a chat id."""

    def __init__(
        self,
        channel_type: ChannelType,
        token: str,
        base_url: str,
        timeout: float = 30.0,
    ):
        if not token:
            raise ValueError(f"A bot token is required for the {channel_type} channel")
        self.channel_type = channel_type
        self.base_url = f"{base_url.rstrip('/')}/bot{token}"
        self.timeout = timeout

    async def _post(self, method: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(f"{self.base_url}/{method}", **kwargs)

    def _raise_for_response(self, response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success and body.get("ok", True):
            return

        description = str(body.get("description", response.text)).lower()
        if response.status_code == 403 or any(
            marker in description for marker in _INVALID_CHAT_MARKERS
        ):
            raise EndpointInvalidError(
                f"{self.channel_type} chat is unreachable: {description}",
                self.channel_type,
            )
        raise ChannelDeliveryError(
            f"{self.channel_type} API error {response.status_code}: {description}",
            self.channel_type,
        )

    @trace_span
    async def send(self, endpoint: str, message: ChannelMessage) -> None:
        try:
            if message.attachment is not None:
                artifact = message.attachment
                response = await self._post(
                    "sendPhoto",
                    data={
                        "chat_id": endpoint,
                        "caption": message.caption[:MAX_PHOTO_CAPTION_LENGTH],
                    },
                    files={
                        "photo": (
                            artifact.filename,
                            artifact.content,
                            artifact.mime_type,
                        )
                    },
                )
            else:
                response = await self._post(
                    "sendMessage", json={"chat_id": endpoint, "text": message.caption}
                )
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(
                f"{self.channel_type} request failed: {e}", self.channel_type
            ) from e

        self._raise_for_response(response)


def telegram_channel(token: Optional[str] = None) -> BotApiChannel:
    return BotApiChannel(
        ChannelType.TELEGRAM,
        token or settings.telegram_bot_token,
        settings.telegram_api_base_url,
    )


def bale_channel(token: Optional[str] = None) -> BotApiChannel:
    return BotApiChannel(
        ChannelType.BALE,
        token or settings.bale_bot_token,
        settings.bale_api_base_url,
    )
