"""Data models for image archive handling."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class LayerCandidate:
    """A nested tar file that may hold one filesystem layer."""

    path: Path
    origin: str  # "directory", "file" or "manifest"


@dataclass
class Artifact:
    """Application artifact extracted from an image layer."""

    path: Path  # Extracted location on disk
    entry_name: str  # Path of the entry within the layer tar
    layer: Path
    size: int
    digest: str


@dataclass
class ImageIdentity:
    """Repository name and tag recovered from image metadata."""

    name: Optional[str] = None
    tag: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.name and not self.tag

    def with_defaults(self, name: str, tag: str = "latest") -> "ImageIdentity":
        """Return a copy with empty fields filled from the given defaults."""
        return ImageIdentity(name=self.name or name, tag=self.tag or tag)
