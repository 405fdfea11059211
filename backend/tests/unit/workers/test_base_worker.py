import asyncio

import pytest
from pydantic import BaseModel
from unittest.mock import AsyncMock

from common.workers.base_worker import BaseWorker


class PingMessage(BaseModel):
    document_id: str
    attempt: int = 1


class TestableWorker(BaseWorker):
    """Concrete implementation of BaseWorker for testing."""

    def __init__(self, message_class=None, providers=None):
        super().__init__("test_queue", "test_worker", message_class)
        self.processed_messages = []
        self.process_error = None
        self._providers = providers or []

    def connected_providers(self):
        return self._providers

    async def process_message(self, message):
        """Records processed messages."""
        if self.process_error:
            raise self.process_error
        self.processed_messages.append(message)


class TestBaseWorker:
    """Tests for BaseWorker lifecycle and message handling."""

    @pytest.fixture
    def mock_provider(self):
        provider = AsyncMock()
        provider.connect.return_value = None
        provider.disconnect.return_value = None
        return provider

    def test_worker_id_defaults_to_queue_name(self):
        class DefaultIdWorker(BaseWorker):
            async def process_message(self, message):
                pass

        worker = DefaultIdWorker("dispatch_queue")

        assert worker.worker_id.startswith("dispatch_queue_worker_")
        assert worker.max_concurrent_messages == 1

    async def test_handler_passes_raw_dict(self):
        worker = TestableWorker()

        await worker._message_handler({"document_id": "doc-1"})

        assert worker.processed_messages == [{"document_id": "doc-1"}]

    async def test_handler_parses_message_class(self):
        worker = TestableWorker(message_class=PingMessage)

        await worker._message_handler({"document_id": "doc-1"})

        assert worker.processed_messages == [PingMessage(document_id="doc-1")]

    async def test_handler_reraises_processing_errors(self):
        worker = TestableWorker()
        worker.process_error = RuntimeError("channel down")

        with pytest.raises(RuntimeError, match="channel down"):
            await worker._message_handler({"document_id": "doc-1"})

    async def test_handler_reraises_parse_errors(self):
        worker = TestableWorker(message_class=PingMessage)

        with pytest.raises(Exception):
            await worker._message_handler({"attempt": 2})

        assert worker.processed_messages == []

    async def test_setup_declares_queue_and_connects_providers(
        self, mock_message_queue, mock_provider
    ):
        worker = TestableWorker(providers=[mock_provider])

        await worker.setup()

        mock_message_queue.connect.assert_awaited_once()
        mock_message_queue.declare_queue.assert_awaited_once_with(
            "test_queue", durable=True, dlq_enabled=True
        )
        mock_provider.connect.assert_awaited_once()

    async def test_setup_failure_propagates(self, mock_message_queue):
        mock_message_queue.connect.side_effect = ConnectionError("broker down")
        worker = TestableWorker()

        with pytest.raises(ConnectionError):
            await worker.setup()

    async def test_start_consumes_and_cleans_up(self, mock_message_queue, mock_provider):
        worker = TestableWorker(providers=[mock_provider])

        await worker.start()

        mock_message_queue.consume.assert_awaited_once_with(
            "test_queue",
            worker._message_handler,
            auto_ack=False,
            prefetch_count=1,
        )
        mock_message_queue.disconnect.assert_awaited_once()
        mock_provider.disconnect.assert_awaited_once()
        assert worker.running is False

    async def test_start_when_already_running(self, mock_message_queue):
        worker = TestableWorker()
        worker.running = True

        await worker.start()

        mock_message_queue.consume.assert_not_called()

    async def test_cleanup_errors_are_logged(self, mock_message_queue, mock_provider):
        mock_provider.disconnect.side_effect = RuntimeError("already closed")
        worker = TestableWorker(providers=[mock_provider])
        worker.message_queue = mock_message_queue

        await worker.cleanup()

        mock_message_queue.disconnect.assert_awaited_once()

    async def test_stop(self):
        worker = TestableWorker()
        worker.running = True

        await worker.stop()

        assert worker.running is False

    async def test_setup_fails_when_broker_unreachable(self, mock_message_queue):
        mock_message_queue.connect.return_value = False
        worker = TestableWorker()

        with pytest.raises(ConnectionError):
            await worker.setup()

        mock_message_queue.declare_queue.assert_not_called()

    async def test_stop_cancels_consumption(self, mock_message_queue, mock_provider):
        consuming = asyncio.Event()

        async def consume_forever(*args, **kwargs):
            consuming.set()
            await asyncio.Future()

        mock_message_queue.consume.side_effect = consume_forever
        worker = TestableWorker(providers=[mock_provider])
        run = asyncio.create_task(worker.start())
        await asyncio.wait_for(consuming.wait(), timeout=1)

        await worker.stop()
        await asyncio.wait_for(run, timeout=1)

        assert worker.running is False
        mock_message_queue.disconnect.assert_awaited_once()
        mock_provider.disconnect.assert_awaited_once()
