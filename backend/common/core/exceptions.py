from typing import Optional


class AppException(Exception):
    """Base application exception."""

    pass


class NotFoundError(AppException):
    """Resource not found exception."""

    pass


class ValidationError(AppException):
    """Validation error exception."""

    pass


class StageMismatchError(AppException):
    """Transition not permitted from the document's current stage or for the acting role.

    Also raised for lost races on concurrent transitions of the same document.
    """

    pass


class StorageError(AppException):
    """Storage operation error exception."""

    pass


class ChannelDeliveryError(AppException):
    """Transient failure delivering a notification on one channel."""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message)
        self.channel = channel


class EndpointInvalidError(ChannelDeliveryError):
    """The channel reported the endpoint/token as permanently dead."""

    pass
