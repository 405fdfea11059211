"""Client for an external rendering service (headless browser snapshotter)."""

from typing import Any, Dict, Optional

import httpx

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import ArtifactRendererInterface, RenderedArtifact

logger = get_logger(__name__)


class HttpArtifactRenderer(ArtifactRendererInterface):
    """Renders artifacts by POSTing the snapshot to the rendering service.

    The service answers only after the page has settled and been captured,
    which is the render-complete signal.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.artifact_renderer_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("ARTIFACT_RENDERER_URL is required for HTTP rendering")
        self.timeout = timeout or settings.artifact_render_timeout_seconds

    @trace_span
    async def render(self, snapshot: Dict[str, Any]) -> RenderedArtifact:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}/render", json=snapshot)
            response.raise_for_status()

        mime_type = response.headers.get("content-type", "image/png").split(";")[0]
        extension = mime_type.split("/")[-1]
        number = snapshot.get("sequence_number", snapshot.get("id", "document"))
        logger.info(
            f"Rendered artifact for document {snapshot.get('id')} ({len(response.content)} bytes)"
        )
        return RenderedArtifact(
            content=response.content,
            mime_type=mime_type,
            filename=f"{snapshot.get('document_type', 'document')}_{number}.{extension}",
        )
