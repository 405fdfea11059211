from enum import StrEnum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from common.providers.rendering.interface import RenderedArtifact


class ChannelType(StrEnum):
    """Independent notification delivery mechanisms."""

    WEB_PUSH = "web_push"
    NATIVE_PUSH = "native_push"
    TELEGRAM = "telegram"
    BALE = "bale"
    WHATSAPP = "whatsapp"


class ChannelMessage(BaseModel):
    """Channel-agnostic notification payload.

    Push channels use title/body; chat bridges send the full caption with the
    attachment when one is present.
    """

    title: str
    body: str
    caption: str
    url: str = "/"
    attachment: Optional[RenderedArtifact] = None
    data: Dict[str, str] = Field(default_factory=dict)
