import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from common.providers.notification_channels.models import ChannelType
from common.providers.rendering.interface import RenderedArtifact


@pytest.fixture
def mock_message_queue():
    """Create a mock message queue instance for testing."""
    queue = AsyncMock()
    queue.declare_queue = AsyncMock(return_value=True)
    queue.publish = AsyncMock(return_value=True)
    queue.consume = AsyncMock()
    queue.connect = AsyncMock(return_value=True)
    queue.disconnect = AsyncMock(return_value=None)
    return queue


@pytest.fixture(autouse=True)
def mock_get_message_queue(mock_message_queue):
    """Automatically mock get_message_queue for all unit tests."""
    with patch(
        "packages.notifications.services.event_publisher.get_message_queue",
        return_value=mock_message_queue,
    ), patch(
        "common.workers.base_worker.get_message_queue",
        return_value=mock_message_queue,
    ):
        yield


@pytest.fixture
def mock_lock_provider():
    """Create a mock lock provider instance for testing."""
    lock = AsyncMock()
    lock.acquire_lock = AsyncMock(return_value="test-lock-token")
    lock.acquire_lock_with_retry = AsyncMock(return_value="test-lock-token")
    lock.release_lock = AsyncMock(return_value=True)
    lock.extend_lock = AsyncMock(return_value=True)
    lock.is_locked = AsyncMock(return_value=False)
    return lock


@pytest.fixture
def mock_channel():
    """Channel adapter that accepts every message."""
    channel = MagicMock()
    channel.channel_type = ChannelType.TELEGRAM
    channel.send = AsyncMock(return_value=None)
    return channel


@pytest.fixture
def mock_renderer():
    renderer = MagicMock()
    renderer.render = AsyncMock(
        return_value=RenderedArtifact(
            content=b"\x89PNG fake", mime_type="image/png", filename="exit_permit_1.png"
        )
    )
    return renderer
