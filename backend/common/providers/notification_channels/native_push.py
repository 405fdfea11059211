"""Native (Android/iOS) push delivery through Firebase Cloud Messaging."""

import asyncio

import firebase_admin
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.providers.firebase.app import get_firebase_app
from .interface import NotificationChannelInterface
from .models import ChannelMessage, ChannelType

logger = get_logger(__name__)


class NativePushChannel(NotificationChannelInterface):
    channel_type = ChannelType.NATIVE_PUSH

    def __init__(self, app: firebase_admin.App | None = None):
        self.app = app or get_firebase_app()

    def _build_message(self, token: str, message: ChannelMessage) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=message.title, body=message.body),
            data={"url": message.url, **message.data},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(sound="default"),
            ),
        )

    @trace_span
    async def send(self, endpoint: str, message: ChannelMessage) -> None:
        fcm_message = self._build_message(endpoint, message)
        try:
            await asyncio.to_thread(messaging.send, fcm_message, app=self.app)
        except (messaging.UnregisteredError, messaging.SenderIdMismatchError) as e:
            raise EndpointInvalidError(
                f"Device token is no longer registered: {e}", self.channel_type
            ) from e
        except firebase_exceptions.InvalidArgumentError as e:
            # Malformed token; FCM will never accept it
            raise EndpointInvalidError(
                f"Device token rejected: {e}", self.channel_type
            ) from e
        except firebase_exceptions.FirebaseError as e:
            raise ChannelDeliveryError(f"FCM send failed: {e}", self.channel_type) from e
