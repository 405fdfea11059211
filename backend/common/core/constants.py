from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreProvider(str, Enum):
    """Document store backends."""

    MEMORY = "memory"
    REDIS = "redis"


class LockProvider(str, Enum):
    """Lock provider backends."""

    MEMORY = "memory"
    REDIS = "redis"


class DispatchMode(str, Enum):
    """How workflow events reach the notification dispatcher."""

    INLINE = "inline"  # background task in the API process
    QUEUE = "queue"  # RabbitMQ + notification worker
