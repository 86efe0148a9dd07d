"""Custom exceptions for the Docker image timezone creator."""


class TzCreatorError(Exception):
    """Base exception for all image conversion errors."""

    pass


class ExtractionError(TzCreatorError):
    """Raised when a tar stream cannot be read or written to disk."""

    pass


class ArtifactNotFoundError(TzCreatorError):
    """Raised when no image layer contains the application artifact."""

    pass


class ManifestParseError(TzCreatorError):
    """Raised when manifest.json is missing or cannot be parsed."""

    pass


class BuildBackendError(TzCreatorError):
    """Raised when the build backend fails to build an image."""

    pass


class ExportError(BuildBackendError):
    """Raised when the build backend fails to export an image archive."""

    pass


class ConfigurationError(TzCreatorError):
    """Raised when a configuration value is invalid."""

    pass
