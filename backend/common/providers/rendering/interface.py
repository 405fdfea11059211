from abc import ABC, abstractmethod
from typing import Any, Dict

from pydantic import BaseModel


class RenderedArtifact(BaseModel):
    """An encoded image snapshot of a document."""

    content: bytes
    mime_type: str = "image/png"
    filename: str = "document.png"


class ArtifactRendererInterface(ABC):
    """Interface for artifact renderers.

    Layout and fonts belong to the renderer; callers only hand over a document
    snapshot and await the finished artifact.
    """

    @abstractmethod
    async def render(self, snapshot: Dict[str, Any]) -> RenderedArtifact:
        """
        Render a document snapshot to an encoded image.

        The returned awaitable resolves only once rendering is complete, so the
        artifact is never captured from a half-rendered view.

        Args:
            snapshot: JSON-compatible document snapshot

        Returns:
            The rendered artifact
        """
        pass
