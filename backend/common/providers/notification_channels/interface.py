from abc import ABC, abstractmethod

from .models import ChannelMessage, ChannelType


class NotificationChannelInterface(ABC):
    """Interface for notification channel adapters."""

    channel_type: ChannelType

    @abstractmethod
    async def send(self, endpoint: str, message: ChannelMessage) -> None:
        """
        Deliver one message to one endpoint.

        Args:
            endpoint: Channel-specific address (push subscription JSON, device token, chat id)
            message: The payload to deliver

        Raises:
            EndpointInvalidError: the channel reports the endpoint as permanently dead
            ChannelDeliveryError: any other (transient) delivery failure
        """
        pass
