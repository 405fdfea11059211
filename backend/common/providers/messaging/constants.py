"""Constants for messaging system."""

from enum import StrEnum


class QueueName(StrEnum):
    """Queue names for the messaging system."""

    NOTIFICATION_DISPATCH = "notification_dispatch"
