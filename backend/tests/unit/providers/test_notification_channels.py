import json

import httpx
import pytest
from unittest.mock import MagicMock, patch
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from pywebpush import WebPushException

from common.core.exceptions import ChannelDeliveryError, EndpointInvalidError
from common.providers.notification_channels import factory
from common.providers.notification_channels.bot_api import (
    MAX_PHOTO_CAPTION_LENGTH,
    BotApiChannel,
)
from common.providers.notification_channels.models import ChannelMessage, ChannelType
from common.providers.notification_channels.native_push import NativePushChannel
from common.providers.notification_channels.web_push import WebPushChannel
from common.providers.notification_channels.whatsapp import WhatsAppBridgeChannel
from common.providers.rendering.interface import RenderedArtifact

RealAsyncClient = httpx.AsyncClient

PUSH_SUBSCRIPTION = json.dumps(
    {"endpoint": "https://push.example/abc", "keys": {"auth": "a", "p256dh": "p"}},
    sort_keys=True,
)


@pytest.fixture
def message():
    return ChannelMessage(
        title="New exit permit request",
        body="No. 1 for Pars Trading",
        caption="New exit permit request\nNumber: 1",
        url="/documents/doc-1",
        data={"document_id": "doc-1"},
    )


@pytest.fixture
def message_with_artifact(message):
    return message.model_copy(
        update={
            "attachment": RenderedArtifact(
                content=b"png-bytes", mime_type="image/png", filename="exit_permit_1.png"
            )
        }
    )


def mock_transport(handler, module: str):
    """Route httpx.AsyncClient requests made by a channel module to handler."""
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    def client_factory(**kwargs):
        return RealAsyncClient(transport=httpx.MockTransport(record), **kwargs)

    return patch(f"{module}.httpx.AsyncClient", side_effect=client_factory), requests


class TestWebPushChannel:
    @pytest.fixture
    def channel(self):
        return WebPushChannel(
            vapid_private_key="private-key", vapid_claims_subject="mailto:a@b.c"
        )

    def test_requires_vapid_key(self):
        with patch(
            "common.providers.notification_channels.web_push.settings"
        ) as mock_settings:
            mock_settings.vapid_private_key = None
            with pytest.raises(ValueError):
                WebPushChannel()

    async def test_send(self, channel, message):
        with patch(
            "common.providers.notification_channels.web_push.webpush"
        ) as mock_webpush:
            await channel.send(PUSH_SUBSCRIPTION, message)

        kwargs = mock_webpush.call_args.kwargs
        assert kwargs["subscription_info"]["endpoint"] == "https://push.example/abc"
        assert kwargs["vapid_private_key"] == "private-key"
        assert kwargs["vapid_claims"] == {"sub": "mailto:a@b.c"}
        payload = json.loads(kwargs["data"])
        assert payload["title"] == "New exit permit request"
        assert payload["url"] == "/documents/doc-1"

    async def test_gone_subscription_is_invalid(self, channel, message):
        response = MagicMock(status_code=410)
        error = WebPushException("Push failed: 410 Gone", response=response)
        with patch(
            "common.providers.notification_channels.web_push.webpush", side_effect=error
        ):
            with pytest.raises(EndpointInvalidError):
                await channel.send(PUSH_SUBSCRIPTION, message)

    async def test_server_error_is_transient(self, channel, message):
        response = MagicMock(status_code=503)
        error = WebPushException("Push failed: 503", response=response)
        with patch(
            "common.providers.notification_channels.web_push.webpush", side_effect=error
        ):
            with pytest.raises(ChannelDeliveryError) as exc_info:
                await channel.send(PUSH_SUBSCRIPTION, message)

        assert not isinstance(exc_info.value, EndpointInvalidError)

    async def test_malformed_stored_endpoint_is_invalid(self, channel, message):
        with pytest.raises(EndpointInvalidError):
            await channel.send("not json", message)


class TestNativePushChannel:
    @pytest.fixture
    def channel(self):
        return NativePushChannel(app=MagicMock())

    async def test_send(self, channel, message):
        with patch(
            "common.providers.notification_channels.native_push.messaging.send",
            return_value="projects/p/messages/1",
        ) as mock_send:
            await channel.send("device-token", message)

        sent = mock_send.call_args.args[0]
        assert sent.token == "device-token"
        assert sent.notification.title == "New exit permit request"
        assert sent.data["url"] == "/documents/doc-1"
        assert sent.data["document_id"] == "doc-1"

    async def test_unregistered_token_is_invalid(self, channel, message):
        error = messaging.UnregisteredError("Requested entity was not found.")
        with patch(
            "common.providers.notification_channels.native_push.messaging.send",
            side_effect=error,
        ):
            with pytest.raises(EndpointInvalidError):
                await channel.send("device-token", message)

    async def test_unavailable_is_transient(self, channel, message):
        error = firebase_exceptions.UnavailableError("FCM unavailable")
        with patch(
            "common.providers.notification_channels.native_push.messaging.send",
            side_effect=error,
        ):
            with pytest.raises(ChannelDeliveryError) as exc_info:
                await channel.send("device-token", message)

        assert not isinstance(exc_info.value, EndpointInvalidError)


class TestBotApiChannel:
    MODULE = "common.providers.notification_channels.bot_api"

    @pytest.fixture
    def channel(self):
        return BotApiChannel(
            ChannelType.TELEGRAM, "123:abc", "https://api.telegram.org/"
        )

    def test_requires_token(self):
        with pytest.raises(ValueError):
            BotApiChannel(ChannelType.BALE, "", "https://tapi.bale.ai")

    async def test_caption_only_uses_send_message(self, channel, message):
        client_patch, requests = mock_transport(
            lambda request: httpx.Response(200, json={"ok": True}), self.MODULE
        )
        with client_patch:
            await channel.send("4242", message)

        assert len(requests) == 1
        assert str(requests[0].url).endswith("/sendMessage")
        assert json.loads(requests[0].content) == {
            "chat_id": "4242",
            "text": message.caption,
        }

    async def test_attachment_uses_send_photo(self, channel, message_with_artifact):
        long_message = message_with_artifact.model_copy(update={"caption": "x" * 2000})
        client_patch, requests = mock_transport(
            lambda request: httpx.Response(200, json={"ok": True}), self.MODULE
        )
        with client_patch:
            await channel.send("4242", long_message)

        request = requests[0]
        assert str(request.url).endswith("/sendPhoto")
        body = request.content
        assert b"png-bytes" in body
        assert b"x" * MAX_PHOTO_CAPTION_LENGTH in body
        assert b"x" * (MAX_PHOTO_CAPTION_LENGTH + 1) not in body

    async def test_blocked_bot_is_invalid(self, channel, message):
        client_patch, _ = mock_transport(
            lambda request: httpx.Response(
                403,
                json={"ok": False, "description": "Forbidden: bot was blocked by the user"},
            ),
            self.MODULE,
        )
        with client_patch:
            with pytest.raises(EndpointInvalidError):
                await channel.send("4242", message)

    async def test_chat_not_found_is_invalid(self, channel, message):
        client_patch, _ = mock_transport(
            lambda request: httpx.Response(
                400, json={"ok": False, "description": "Bad Request: chat not found"}
            ),
            self.MODULE,
        )
        with client_patch:
            with pytest.raises(EndpointInvalidError):
                await channel.send("4242", message)

    async def test_rate_limit_is_transient(self, channel, message):
        client_patch, _ = mock_transport(
            lambda request: httpx.Response(
                429, json={"ok": False, "description": "Too Many Requests: retry after 5"}
            ),
            self.MODULE,
        )
        with client_patch:
            with pytest.raises(ChannelDeliveryError) as exc_info:
                await channel.send("4242", message)

        assert not isinstance(exc_info.value, EndpointInvalidError)

    async def test_network_error_is_transient(self, channel, message):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        client_patch, _ = mock_transport(fail, self.MODULE)
        with client_patch:
            with pytest.raises(ChannelDeliveryError):
                await channel.send("4242", message)


class TestWhatsAppBridgeChannel:
    MODULE = "common.providers.notification_channels.whatsapp"

    @pytest.fixture
    def channel(self):
        return WhatsAppBridgeChannel(bridge_url="http://bridge:3000/", token="secret")

    async def test_send_with_media(self, channel, message_with_artifact):
        client_patch, requests = mock_transport(
            lambda request: httpx.Response(200, json={"status": "sent"}), self.MODULE
        )
        with client_patch:
            await channel.send("989121234567", message_with_artifact)

        request = requests[0]
        assert str(request.url) == "http://bridge:3000/send"
        assert request.headers["Authorization"] == "Bearer secret"
        payload = json.loads(request.content)
        assert payload["to"] == "989121234567"
        assert payload["message"] == message_with_artifact.caption
        assert payload["media"]["mimeType"] == "image/png"
        assert payload["media"]["filename"] == "exit_permit_1.png"

    async def test_send_caption_only(self, channel, message):
        client_patch, requests = mock_transport(
            lambda request: httpx.Response(200), self.MODULE
        )
        with client_patch:
            await channel.send("989121234567", message)

        assert "media" not in json.loads(requests[0].content)

    async def test_unknown_number_is_invalid(self, channel, message):
        client_patch, _ = mock_transport(
            lambda request: httpx.Response(404, text="not on whatsapp"), self.MODULE
        )
        with client_patch:
            with pytest.raises(EndpointInvalidError):
                await channel.send("989121234567", message)

    async def test_bridge_error_is_transient(self, channel, message):
        client_patch, _ = mock_transport(
            lambda request: httpx.Response(502, text="bad gateway"), self.MODULE
        )
        with client_patch:
            with pytest.raises(ChannelDeliveryError) as exc_info:
                await channel.send("989121234567", message)

        assert not isinstance(exc_info.value, EndpointInvalidError)


class TestNotificationChannelFactory:
    def test_only_configured_channels(self):
        mock_settings = MagicMock()
        mock_settings.telegram_api_base_url = "https://api.telegram.org"
        with patch(
            "common.providers.notification_channels.factory.settings", mock_settings
        ), patch(
            "common.providers.notification_channels.bot_api.settings", mock_settings
        ):
            mock_settings.vapid_private_key = None
            mock_settings.firebase_project_id = None
            mock_settings.telegram_bot_token = "123:abc"
            mock_settings.bale_bot_token = None
            mock_settings.whatsapp_bridge_url = None

            channels = factory.get_notification_channels()

        assert list(channels) == [ChannelType.TELEGRAM]
        assert channels[ChannelType.TELEGRAM].channel_type == ChannelType.TELEGRAM

    def test_nothing_configured(self):
        with patch(
            "common.providers.notification_channels.factory.settings"
        ) as mock_settings:
            mock_settings.vapid_private_key = None
            mock_settings.firebase_project_id = None
            mock_settings.telegram_bot_token = None
            mock_settings.bale_bot_token = None
            mock_settings.whatsapp_bridge_url = None

            assert factory.get_notification_channels() == {}
