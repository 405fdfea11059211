from .interface import NotificationChannelInterface
from .models import ChannelMessage, ChannelType
from .factory import get_notification_channels

__all__ = [
    "NotificationChannelInterface",
    "ChannelMessage",
    "ChannelType",
    "get_notification_channels",
]
