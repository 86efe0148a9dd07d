"""Build context staging and image rebuild through a build backend."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles

from .core.backend import BuildBackend
from .core.types import PipelineConfig, RecipeConfig
from .exceptions import BuildBackendError, ExportError
from .tar.models import Artifact, ImageIdentity

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"
PARTIAL_SUFFIX = ".partial"
COPY_CHUNK_SIZE = 1024 * 1024


def new_image_ref(identity: ImageIdentity) -> str:
    """Reference of the rebuilt image, e.g. "myapp-tz:v2"."""
    return f"{identity.name}-tz:{identity.tag}"


def output_archive_name(identity: ImageIdentity) -> str:
    """Output file name, e.g. "myapp-tz-v2.tar"; '/' in the name becomes '_'."""
    name = identity.name.replace("/", "_")
    return f"{name}-tz-{identity.tag}.tar"


async def stage_build_context(
    artifact_path: Path, context_dir: Path, recipe: RecipeConfig
) -> None:
    """Copy the artifact and write the Dockerfile into an empty context directory."""
    async with aiofiles.open(artifact_path, "rb") as src:
        async with aiofiles.open(context_dir / recipe.artifact_name, "wb") as dst:
            while True:
                chunk = await src.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                await dst.write(chunk)

    async with aiofiles.open(context_dir / DOCKERFILE_NAME, "w", encoding="utf-8") as f:
        await f.write(recipe.render_dockerfile())


async def build_image(
    artifact: Artifact,
    identity: ImageIdentity,
    output_dir: Path,
    backend: BuildBackend,
    config: Optional[PipelineConfig] = None,
) -> Path:
    """Rebuild the artifact into a timezone-aware image and export it.

    Args:
        artifact: Extracted application artifact
        identity: Image name and tag, defaults already applied
        output_dir: Directory receiving the exported archive
        backend: Build backend to build and export with
        config: Pipeline configuration (recipe and temp root)

    Returns:
        Path of the exported image archive

    Raises:
        BuildBackendError: If the build fails
        ExportError: If the export fails; an existing file at the output
            path is left untouched
    """
    config = config or PipelineConfig()
    image_ref = new_image_ref(identity)
    output_path = Path(output_dir) / output_archive_name(identity)

    with tempfile.TemporaryDirectory(prefix="docker-build-", dir=config.temp_root) as tmp:
        context_dir = Path(tmp)
        try:
            await stage_build_context(artifact.path, context_dir, config.recipe)
        except OSError as e:
            raise BuildBackendError(f"Cannot stage build context: {e}") from e

        status = await backend.build(context_dir, image_ref)
        if status != 0:
            raise BuildBackendError(f"Docker build failed with exit code: {status}")
        logger.info("Docker build completed successfully")

        # Export next to the output and move it into place only once complete
        partial_path = output_path.with_name(output_path.name + PARTIAL_SUFFIX)
        try:
            status = await backend.export(image_ref, partial_path)
            if status != 0:
                raise ExportError(f"Docker save failed with exit code: {status}")
            os.replace(partial_path, output_path)
        except BuildBackendError:
            partial_path.unlink(missing_ok=True)
            raise
        except OSError as e:
            partial_path.unlink(missing_ok=True)
            raise ExportError(f"Cannot move exported archive into place: {e}") from e
        logger.info("Docker export completed successfully")

    return output_path
