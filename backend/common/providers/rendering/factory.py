from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

from .interface import ArtifactRendererInterface
from .http_renderer import HttpArtifactRenderer

logger = get_logger(__name__)


def get_artifact_renderer() -> Optional[ArtifactRendererInterface]:
    """Get the configured renderer, or None when no rendering service is configured."""
    if not settings.artifact_renderer_url:
        logger.info("No artifact renderer configured; notifications are caption-only")
        return None
    return HttpArtifactRenderer(base_url=settings.artifact_renderer_url)
