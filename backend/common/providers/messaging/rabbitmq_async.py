import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from urllib.parse import quote

import aio_pika
from aio_pika import connect_robust, Message
from aio_pika.abc import AbstractIncomingMessage
from opentelemetry import trace

from common.core.config import settings
from .interface import MessageQueueInterface
from common.core.otel_axiom_exporter import (
    get_logger,
    inject_trace_context,
    create_span_with_context,
)

logger = get_logger(__name__)

# Header carrying how many times a message has been handed to a consumer
DELIVERY_ATTEMPT_HEADER = "x-delivery-attempt"

DEAD_LETTER_TTL_MS = 7 * 24 * 60 * 60 * 1000
DEAD_LETTER_MAX_LENGTH = 10000


def dead_letter_names(queue: str) -> tuple[str, str]:
    """Exchange and queue names holding messages that exhausted their attempts."""
    return f"{queue}.dlx", f"{queue}.dlq"


def delivery_attempt(message: AbstractIncomingMessage) -> int:
    try:
        return int((message.headers or {}).get(DELIVERY_ATTEMPT_HEADER, 1))
    except (TypeError, ValueError):
        return 1


class RabbitMQClient(MessageQueueInterface):
    """aio-pika client with bounded redelivery.

    A failed message is republished with an incremented attempt header until it
    has been tried `max_delivery_attempts` times, then rejected into the dead
    letter queue. Consumers must therefore tolerate duplicates.
    """

    def __init__(self, max_delivery_attempts: Optional[int] = None):
        self.connection: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self.channel: Optional[aio_pika.abc.AbstractChannel] = None
        self.url = (
            f"amqp://{quote(settings.rabbitmq_username)}:{quote(settings.rabbitmq_password)}"
            f"@{settings.rabbitmq_host}:{settings.rabbitmq_port}"
            f"/{quote(settings.rabbitmq_vhost, safe='')}"
        )
        self.max_delivery_attempts = (
            max_delivery_attempts or settings.dispatch_max_delivery_attempts
        )
        self._declared_queues: Set[str] = set()

    async def connect(self) -> bool:
        try:
            # Robust connections reconnect on their own; publisher confirms are on
            self.connection = await connect_robust(self.url)
            self.channel = await self.connection.channel()
            self._declared_queues.clear()
            logger.info(
                f"Connected to RabbitMQ at {settings.rabbitmq_host}:{settings.rabbitmq_port}"
            )
            return True
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            return False

    async def disconnect(self) -> None:
        for resource in (self.channel, self.connection):
            if resource is None or resource.is_closed:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.error(f"Error closing RabbitMQ {type(resource).__name__}: {e}")
        logger.info("Disconnected from RabbitMQ")

    async def _ensure_channel(self) -> None:
        if self.channel is None or self.channel.is_closed:
            if not await self.connect():
                raise ConnectionError("RabbitMQ is not reachable")

    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        if queue in self._declared_queues:
            return True
        try:
            await self._ensure_channel()
            arguments: Dict[str, Any] = {}
            if dlq_enabled:
                dlx_name, dlq_name = dead_letter_names(queue)
                dlx = await self.channel.declare_exchange(
                    dlx_name, aio_pika.ExchangeType.DIRECT, durable=True
                )
                dlq = await self.channel.declare_queue(
                    dlq_name,
                    durable=True,
                    arguments={
                        "x-message-ttl": DEAD_LETTER_TTL_MS,
                        "x-max-length": DEAD_LETTER_MAX_LENGTH,
                    },
                )
                await dlq.bind(dlx, routing_key=queue)
                arguments = {
                    "x-dead-letter-exchange": dlx_name,
                    "x-dead-letter-routing-key": queue,
                }

            await self.channel.declare_queue(
                queue, durable=durable, arguments=arguments or None
            )
            self._declared_queues.add(queue)
            logger.info(f"Declared queue {queue} (dead letters: {dlq_enabled})")
            return True
        except Exception as e:
            logger.error(f"Failed to declare queue {queue}: {e}")
            return False

    async def _send(self, queue: str, body: bytes, headers: Dict[str, Any]) -> None:
        await self.channel.default_exchange.publish(
            Message(
                body=body,
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                content_type="application/json",
                headers=headers,
            ),
            routing_key=queue,
            mandatory=True,
        )

    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        try:
            await self._ensure_channel()
            await self.declare_queue(queue, durable=True, dlq_enabled=True)
            headers = {**inject_trace_context(), DELIVERY_ATTEMPT_HEADER: 1}
            await self._send(queue, json.dumps(message).encode(), headers)
            logger.info(f"Published message to queue {queue}")
            return True
        except Exception as e:
            logger.error(f"Failed to publish message to {queue}: {e}")
            return False

    async def _retry_or_dead_letter(
        self, queue: str, message: AbstractIncomingMessage, attempt: int
    ) -> None:
        if attempt >= self.max_delivery_attempts:
            logger.error(
                f"Message on {queue} failed {attempt} time(s); moving it to the dead letter queue"
            )
            await message.reject(requeue=False)
            return

        headers = {**(message.headers or {}), DELIVERY_ATTEMPT_HEADER: attempt + 1}
        try:
            await self._send(queue, message.body, headers)
        except Exception as e:
            # The broker keeps the original when it cannot take the copy
            logger.error(f"Could not republish failed message on {queue}: {e}")
            await message.nack(requeue=True)
            return
        await message.ack()
        logger.warning(f"Message on {queue} scheduled for attempt {attempt + 1}")

    async def _handle(
        self,
        queue: str,
        message: AbstractIncomingMessage,
        callback: Callable[[Dict[str, Any]], Awaitable[None]],
        auto_ack: bool,
    ) -> None:
        attempt = delivery_attempt(message)
        with create_span_with_context(
            f"consume {queue}", dict(message.headers or {})
        ) as span:
            span.set_attribute("messaging.system", "rabbitmq")
            span.set_attribute("messaging.source", queue)
            span.set_attribute("messaging.delivery_attempt", attempt)

            try:
                payload = json.loads(message.body.decode())
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.error(f"Dropping undecodable message on {queue}: {e}")
                if not auto_ack:
                    await message.reject(requeue=False)
                return

            try:
                await callback(payload)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR))
                logger.error(
                    f"Attempt {attempt} of message on {queue} failed: {e}", exc_info=True
                )
                if not auto_ack:
                    await self._retry_or_dead_letter(queue, message, attempt)
                return

            if not auto_ack:
                await message.ack()

    async def consume(
        self,
        queue: str,
        callback: Callable[[Dict[str, Any]], Awaitable[None]],
        auto_ack: bool = True,
        prefetch_count: int = 1,
    ) -> None:
        await self._ensure_channel()
        await self.channel.set_qos(prefetch_count=prefetch_count)
        await self.declare_queue(queue, durable=True, dlq_enabled=True)
        queue_obj = await self.channel.get_queue(queue)

        # prefetch bounds in-flight messages; tasks are kept so shutdown can wait
        in_flight: Set[asyncio.Task] = set()

        async def on_message(message: AbstractIncomingMessage) -> None:
            task = asyncio.create_task(self._handle(queue, message, callback, auto_ack))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        logger.info(
            f"Consuming {queue} (prefetch={prefetch_count}, "
            f"max attempts={self.max_delivery_attempts})"
        )
        await queue_obj.consume(on_message, no_ack=auto_ack)

        try:
            await asyncio.Future()
        except asyncio.CancelledError:
            if in_flight:
                logger.info(f"Waiting for {len(in_flight)} in-flight message(s) on {queue}")
                await asyncio.gather(*in_flight, return_exceptions=True)
            raise
