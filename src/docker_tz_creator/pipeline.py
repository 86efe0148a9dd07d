"""Per-archive conversion pipeline and batch driver."""

import asyncio
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Optional, Union

from .build import build_image, output_archive_name
from .core.backend import BuildBackend
from .core.types import PipelineConfig
from .exceptions import TzCreatorError
from .tar.locator import locate_artifact
from .tar.reader import extract_archive
from .tar.tags import resolve_image_identity

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar"
DEFAULT_TAG = "latest"


@dataclass
class ArchiveFailure:
    """One input archive that could not be converted."""

    archive: Path
    reason: str


@dataclass
class BatchSummary:
    """Outcome of a batch run."""

    total: int = 0
    outputs: list[Path] = field(default_factory=list)
    failures: list[ArchiveFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.outputs)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures


def archive_stem(archive_path: Path) -> str:
    """Default image name: the lower-cased file name up to its .tar suffix.

    Raises:
        TzCreatorError: If nothing precedes the suffix
    """
    name = archive_path.name.lower()
    index = name.find(ARCHIVE_SUFFIX)
    stem = name[:index] if index >= 0 else name
    if not stem:
        raise TzCreatorError(f"Cannot derive an image name from file name: {archive_path.name}")
    return stem


def find_image_archives(input_dir: Path) -> list[Path]:
    """List the *.tar files of a directory, sorted by name."""
    return sorted(
        path
        for path in Path(input_dir).iterdir()
        if path.is_file() and path.name.lower().endswith(ARCHIVE_SUFFIX)
    )


async def process_image_archive(
    archive_path: Union[str, Path],
    output_dir: Union[str, Path],
    backend: BuildBackend,
    config: Optional[PipelineConfig] = None,
    claimed_outputs: Optional[Collection[Path]] = None,
) -> Path:
    """Convert one docker save archive into a timezone-aware image archive.

    The archive is extracted into a private temporary directory that is
    removed on every exit path, together with any layer scratch space.

    Args:
        archive_path: Source image archive
        output_dir: Directory receiving <name>-tz-<tag>.tar
        backend: Build backend used to rebuild and export the image
        config: Pipeline configuration
        claimed_outputs: Output paths already produced in this run; an
            archive resolving to one of them is rejected before building

    Returns:
        Path of the exported archive

    Raises:
        ExtractionError: If the archive cannot be extracted
        ArtifactNotFoundError: If no layer holds the artifact
        BuildBackendError: If the rebuild fails
        ExportError: If the export fails
        TzCreatorError: If no image name can be derived or the output is
            already claimed
    """
    config = config or PipelineConfig()
    archive_path = Path(archive_path)
    output_dir = Path(output_dir)
    logger.info(f"Processing Docker image: {archive_path.name}")

    loop = asyncio.get_event_loop()
    with tempfile.TemporaryDirectory(prefix="docker-tz-creator-", dir=config.temp_root) as tmp:
        run_dir = Path(tmp)
        tree = run_dir / "image"
        scratch_dir = run_dir / "layers"
        logger.debug(f"Working directory: {run_dir}")

        logger.info("Extracting tar file...")
        await loop.run_in_executor(None, extract_archive, archive_path, tree)
        logger.info("Tar extraction completed")

        artifact = await loop.run_in_executor(
            None, locate_artifact, tree, scratch_dir, config.recipe
        )
        logger.debug(f"Artifact {artifact.entry_name}: {artifact.size} bytes, {artifact.digest}")

        identity = resolve_image_identity(tree)
        if identity.is_empty:
            logger.info("No repository tag in image metadata, using file name")
        identity = identity.with_defaults(
            identity.name or archive_stem(archive_path), DEFAULT_TAG
        )

        output_name = output_archive_name(identity)
        if claimed_outputs and output_dir / output_name in claimed_outputs:
            raise TzCreatorError(
                f"Output {output_name} was already produced by an earlier archive"
            )

        output_path = await build_image(artifact, identity, output_dir, backend, config)

    logger.info(f"Successfully created: {output_path}")
    return output_path


async def process_directory(
    input_dir: Union[str, Path],
    output_dir: Union[str, Path],
    backend: BuildBackend,
    config: Optional[PipelineConfig] = None,
) -> BatchSummary:
    """Convert every *.tar archive of input_dir, one at a time.

    A failing archive is recorded and the batch moves on to the next one.

    Args:
        input_dir: Directory of source image archives
        output_dir: Directory receiving the converted archives
        backend: Build backend used for every archive
        config: Pipeline configuration

    Returns:
        BatchSummary with outputs and per-file failures
    """
    archives = find_image_archives(Path(input_dir))
    summary = BatchSummary(total=len(archives))

    if not archives:
        logger.info(f"No .tar files found in input directory: {input_dir}")
        return summary

    logger.info(f"Found {len(archives)} tar file(s) to process:")
    for archive in archives:
        logger.info(f"  - {archive.name}")

    for archive in archives:
        logger.info(f"=== Processing: {archive.name} ===")
        try:
            output_path = await process_image_archive(
                archive, output_dir, backend, config, claimed_outputs=summary.outputs
            )
        except Exception as e:
            if not isinstance(e, TzCreatorError):
                logger.exception(f"Unexpected error while processing {archive.name}")
            logger.error(f"✗ Failed to process: {archive.name}")
            logger.error(f"  Error: {e}")
            summary.failures.append(ArchiveFailure(archive=archive, reason=str(e)))
            continue

        summary.outputs.append(output_path)
        logger.info(f"✓ Successfully processed: {archive.name}")

    log_summary(summary)
    return summary


def log_summary(summary: BatchSummary) -> None:
    logger.info("=== Processing Summary ===")
    logger.info(f"Total files: {summary.total}")
    logger.info(f"Successful: {summary.succeeded}")
    logger.info(f"Failed: {summary.failed}")
    if summary.failures:
        logger.warning("Some files failed to process. Check the error messages above.")
