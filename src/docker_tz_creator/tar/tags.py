"""Image name and tag resolution from extracted image archives."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from ..exceptions import ManifestParseError
from .models import ImageIdentity

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
REPOSITORIES_FILENAME = "repositories"


def _load_json(path: Path) -> Any:
    """Read and decode a JSON metadata file.

    Raises:
        ManifestParseError: If the file is missing or not valid JSON
    """
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ManifestParseError(f"{path.name} not found") from e
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid JSON in {path.name}: {e}") from e
    except (UnicodeDecodeError, OSError) as e:
        raise ManifestParseError(f"Cannot read {path.name}: {e}") from e


def parse_repository_tag(repo_tag: str) -> tuple[str, Optional[str]]:
    """Split a repository:tag string into its repository and tag parts.

    Only the last ':' separates the tag, so registry ports survive. A colon
    that appears before the last '/' belongs to the registry host.

    Args:
        repo_tag: String such as "myapp:v2" or "localhost:5000/myapp:latest"

    Returns:
        (repository, tag) tuple; tag is None when absent or empty

    Examples:
        parse_repository_tag("myapp:v2")                  # ("myapp", "v2")
        parse_repository_tag("myapp")                     # ("myapp", None)
        parse_repository_tag("localhost:5000/myapp")      # ("localhost:5000/myapp", None)
        parse_repository_tag("localhost:5000/myapp:1.0")  # ("localhost:5000/myapp", "1.0")
    """
    repository, sep, tag = repo_tag.rpartition(":")
    if not sep or "/" in tag:
        return repo_tag, None
    return repository, tag or None


def parse_manifest_identity(manifest_path: Union[str, Path]) -> ImageIdentity:
    """Read the first RepoTags entry of a docker save manifest.json.

    Args:
        manifest_path: Path to manifest.json

    Returns:
        ImageIdentity from the first image's first repository tag

    Raises:
        ManifestParseError: If the file is missing, malformed or has no tags
    """
    manifest_data = _load_json(Path(manifest_path))

    if not isinstance(manifest_data, list) or not manifest_data:
        raise ManifestParseError("manifest.json must be a non-empty array")

    first_manifest = manifest_data[0]
    if not isinstance(first_manifest, dict):
        raise ManifestParseError("Invalid manifest entry structure")

    repo_tags = first_manifest.get("RepoTags")
    if not isinstance(repo_tags, list) or not repo_tags:
        raise ManifestParseError("manifest.json has no RepoTags")

    repo_tag = repo_tags[0]
    if not isinstance(repo_tag, str) or not repo_tag:
        raise ManifestParseError(f"Invalid repository tag: {repo_tag!r}")

    name, tag = parse_repository_tag(repo_tag)
    return ImageIdentity(name=name, tag=tag)


def parse_repositories_identity(repositories_path: Union[str, Path]) -> ImageIdentity:
    """Read the first repository and tag of a legacy repositories file.

    The file maps repository names to {tag: layer_id} objects.

    Raises:
        ManifestParseError: If the file is missing, malformed or empty
    """
    repos_data = _load_json(Path(repositories_path))

    if not isinstance(repos_data, dict) or not repos_data:
        raise ManifestParseError("repositories must be a non-empty object")

    repo_name, tags = next(iter(repos_data.items()))
    tag = next(iter(tags), None) if isinstance(tags, dict) else None
    return ImageIdentity(name=repo_name or None, tag=tag or None)


def resolve_image_identity(tree: Union[str, Path]) -> ImageIdentity:
    """Recover the original image name and tag from an extracted archive.

    manifest.json is tried first, then the legacy repositories file. Any
    parse failure means "no identity"; the caller supplies defaults.

    Args:
        tree: Directory holding the extracted top-level archive

    Returns:
        ImageIdentity, possibly empty
    """
    tree = Path(tree)

    try:
        return parse_manifest_identity(tree / MANIFEST_FILENAME)
    except ManifestParseError as e:
        logger.debug(f"No identity from {MANIFEST_FILENAME}: {e}")

    try:
        return parse_repositories_identity(tree / REPOSITORIES_FILENAME)
    except ManifestParseError as e:
        logger.debug(f"No identity from {REPOSITORIES_FILENAME}: {e}")

    return ImageIdentity()


def read_manifest_layers(tree: Union[str, Path]) -> list[str]:
    """Return the Layers paths of the first manifest entry, or [] if unavailable."""
    try:
        manifest_data = _load_json(Path(tree) / MANIFEST_FILENAME)
    except ManifestParseError:
        return []

    if not isinstance(manifest_data, list) or not manifest_data:
        return []
    first_manifest = manifest_data[0]
    if not isinstance(first_manifest, dict):
        return []

    layers = first_manifest.get("Layers", [])
    if not isinstance(layers, list):
        return []
    return [layer for layer in layers if isinstance(layer, str)]
