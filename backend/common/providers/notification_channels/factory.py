from typing import Dict

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

from .interface import NotificationChannelInterface
from .models import ChannelType

logger = get_logger(__name__)


def get_notification_channels() -> Dict[ChannelType, NotificationChannelInterface]:
    """
    Build an adapter for every channel whose credentials are configured.

    Returns:
        Mapping of channel type to adapter; unconfigured channels are absent
    """
    channels: Dict[ChannelType, NotificationChannelInterface] = {}

    if settings.vapid_private_key:
        from .web_push import WebPushChannel

        channels[ChannelType.WEB_PUSH] = WebPushChannel()

    if settings.firebase_project_id:
        from .native_push import NativePushChannel

        channels[ChannelType.NATIVE_PUSH] = NativePushChannel()

    if settings.telegram_bot_token:
        from .bot_api import telegram_channel

        channels[ChannelType.TELEGRAM] = telegram_channel()

    if settings.bale_bot_token:
        from .bot_api import bale_channel

        channels[ChannelType.BALE] = bale_channel()

    if settings.whatsapp_bridge_url:
        from .whatsapp import WhatsAppBridgeChannel

        channels[ChannelType.WHATSAPP] = WhatsAppBridgeChannel()

    logger.info(
        f"Configured notification channels: {', '.join(channels) or 'none'}"
    )
    return channels
