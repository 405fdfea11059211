from typing import Any, Dict

from pydantic import BaseModel


class NotificationDispatchMessage(BaseModel):
    """Message model for notification dispatch.

    Carries the serialized workflow event; the worker rebuilds the event and
    runs the dispatcher for it.
    """

    event: Dict[str, Any]
