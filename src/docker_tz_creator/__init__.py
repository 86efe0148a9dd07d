"""Docker image timezone creator - rebuild docker save archives with a fixed timezone."""

__version__ = "0.1.0"

from .build import build_image
from .core.backend import BuildBackend, create_backend
from .core.docker_cli import DockerCliBackend
from .core.engine_client import DockerEngineBackend
from .core.types import PipelineConfig, RecipeConfig
from .exceptions import (
    ArtifactNotFoundError,
    BuildBackendError,
    ConfigurationError,
    ExportError,
    ExtractionError,
    ManifestParseError,
    TzCreatorError,
)
from .pipeline import BatchSummary, process_directory, process_image_archive
from .tar.locator import locate_artifact
from .tar.models import Artifact, ImageIdentity, LayerCandidate
from .tar.reader import extract_archive, extract_archive_async
from .tar.tags import parse_repository_tag, resolve_image_identity

__all__ = [
    "Artifact",
    "ArtifactNotFoundError",
    "BatchSummary",
    "BuildBackend",
    "BuildBackendError",
    "ConfigurationError",
    "DockerCliBackend",
    "DockerEngineBackend",
    "ExportError",
    "ExtractionError",
    "ImageIdentity",
    "LayerCandidate",
    "ManifestParseError",
    "PipelineConfig",
    "RecipeConfig",
    "TzCreatorError",
    "build_image",
    "create_backend",
    "extract_archive",
    "extract_archive_async",
    "locate_artifact",
    "parse_repository_tag",
    "process_directory",
    "process_image_archive",
    "resolve_image_identity",
]
