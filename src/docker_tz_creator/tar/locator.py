"""Locate the application artifact inside the layers of an extracted image."""

import logging
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from ..core.types import RecipeConfig
from ..exceptions import ArtifactNotFoundError, ExtractionError
from ..utils.digest import calculate_file_digest
from .models import Artifact, LayerCandidate
from .tags import read_manifest_layers

logger = logging.getLogger(__name__)

LAYER_FILENAME = "layer.tar"


def _normalize_entry_name(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name


def _matches_artifact(entry_name: str, recipe: RecipeConfig) -> bool:
    name = _normalize_entry_name(entry_name)
    return name == recipe.artifact_path or name.endswith(recipe.artifact_extension)


def iter_layer_candidates(tree: Union[str, Path]) -> Iterator[LayerCandidate]:
    """Yield nested layer archives in search order.

    Per-layer directories holding a layer.tar come first, then loose tar
    files at the top level, then any manifest-listed layer not yet seen
    (OCI layout blobs). Within each group the directory listing order is
    kept as is.
    """
    tree = Path(tree)
    seen: set[Path] = set()

    for entry in tree.iterdir():
        layer_tar = entry / LAYER_FILENAME
        if entry.is_dir() and layer_tar.is_file():
            seen.add(layer_tar.resolve())
            yield LayerCandidate(path=layer_tar, origin="directory")

    for entry in tree.iterdir():
        if not entry.is_file():
            continue
        if entry.name.endswith(".tar") or entry.name == LAYER_FILENAME:
            seen.add(entry.resolve())
            yield LayerCandidate(path=entry, origin="file")

    for layer_path in read_manifest_layers(tree):
        candidate = (tree / layer_path).resolve()
        if candidate in seen or not candidate.is_file():
            continue
        if not candidate.is_relative_to(tree.resolve()):
            logger.warning(f"Ignoring manifest layer outside archive: {layer_path}")
            continue
        seen.add(candidate)
        yield LayerCandidate(path=candidate, origin="manifest")


def extract_artifact_from_layer(
    layer_path: Union[str, Path],
    scratch_dir: Union[str, Path],
    recipe: RecipeConfig,
) -> Optional[Artifact]:
    """Extract the first matching artifact entry of one layer archive.

    The artifact is written under a fresh directory inside scratch_dir. When
    the layer holds no match that directory is removed again.

    Args:
        layer_path: Nested layer tar file
        scratch_dir: Parent directory for extraction
        recipe: Recipe naming the conventional path and extension

    Returns:
        Artifact, or None if the layer holds no match

    Raises:
        tarfile.TarError: If the layer is not a readable tar stream
        OSError: If the artifact cannot be written
    """
    layer_path = Path(layer_path)
    Path(scratch_dir).mkdir(parents=True, exist_ok=True)
    extract_dir = Path(tempfile.mkdtemp(prefix="layer-extract-", dir=scratch_dir))

    try:
        with tarfile.open(str(layer_path), "r|*") as tar:
            for member in tar:
                if not member.isfile() or not _matches_artifact(member.name, recipe):
                    continue

                file_obj = tar.extractfile(member)
                if file_obj is None:
                    continue

                target = extract_dir / recipe.artifact_name
                with open(target, "wb") as out:
                    shutil.copyfileobj(file_obj, out)

                logger.info(f"Found artifact: {member.name} ({layer_path.name})")
                return Artifact(
                    path=target,
                    entry_name=member.name,
                    layer=layer_path,
                    size=target.stat().st_size,
                    digest=calculate_file_digest(target),
                )
    except Exception:
        shutil.rmtree(extract_dir, ignore_errors=True)
        raise

    shutil.rmtree(extract_dir, ignore_errors=True)
    return None


def locate_artifact(
    tree: Union[str, Path],
    scratch_dir: Union[str, Path],
    recipe: Optional[RecipeConfig] = None,
) -> Artifact:
    """Find and extract the application artifact of an extracted image.

    This is a first-match search: if several layers hold matching files,
    the one found first in search order wins.

    Args:
        tree: Directory holding the extracted top-level archive
        scratch_dir: Directory for layer extraction; must not be inside tree
        recipe: Recipe naming the conventional path and extension

    Returns:
        The extracted Artifact

    Raises:
        ArtifactNotFoundError: If no layer contains a matching entry
        ExtractionError: If a matching artifact cannot be written to disk
    """
    recipe = recipe or RecipeConfig()
    logger.info("Looking for artifact in image layers...")

    tried = 0
    for candidate in iter_layer_candidates(tree):
        tried += 1
        logger.debug(f"Scanning layer {candidate.path} ({candidate.origin})")
        try:
            artifact = extract_artifact_from_layer(candidate.path, scratch_dir, recipe)
        except (tarfile.TarError, EOFError) as e:
            logger.warning(f"Skipping unreadable layer {candidate.path.name}: {e}")
            continue
        except OSError as e:
            raise ExtractionError(f"Cannot extract artifact from {candidate.path.name}: {e}") from e

        if artifact is not None:
            return artifact

    raise ArtifactNotFoundError(
        f"No {recipe.artifact_extension} artifact found in {tried} image layer(s)"
    )
