from .interface import MessageQueueInterface
from .rabbitmq_async import RabbitMQClient
from .factory import get_message_queue
from .constants import QueueName
from .messages import NotificationDispatchMessage

__all__ = [
    "MessageQueueInterface",
    "RabbitMQClient",
    "get_message_queue",
    "QueueName",
    "NotificationDispatchMessage",
]
