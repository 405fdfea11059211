from .interface import ArtifactRendererInterface, RenderedArtifact
from .http_renderer import HttpArtifactRenderer
from .factory import get_artifact_renderer

__all__ = [
    "ArtifactRendererInterface",
    "RenderedArtifact",
    "HttpArtifactRenderer",
    "get_artifact_renderer",
]
