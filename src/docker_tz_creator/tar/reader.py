"""Streaming extraction of tar formatted image archives."""

import asyncio
import logging
import shutil
import tarfile
from pathlib import Path
from typing import BinaryIO, Union

from ..exceptions import ExtractionError

logger = logging.getLogger(__name__)

SourceArchive = Union[str, Path, BinaryIO]


def _resolve_member_path(destination: Path, member_name: str) -> Path:
    """Map a tar member name to a path inside destination.

    Raises:
        ExtractionError: If the member would land outside destination
    """
    target = (destination / member_name).resolve()
    if not target.is_relative_to(destination):
        raise ExtractionError(f"Refusing to extract {member_name}: outside {destination}")
    return target


def _extract_members(tar: tarfile.TarFile, destination: Path) -> int:
    """Copy every directory and regular file of an open tar stream.

    Returns:
        Number of files written
    """
    written = 0
    for member in tar:
        target = _resolve_member_path(destination, member.name)

        if member.isdir():
            target.mkdir(parents=True, exist_ok=True)
            continue

        if not member.isfile():
            # Links, devices and fifos are not recreated
            logger.debug(f"Skipping non-regular entry: {member.name}")
            continue

        target.parent.mkdir(parents=True, exist_ok=True)
        file_obj = tar.extractfile(member)
        if file_obj is None:
            raise ExtractionError(f"Could not read entry {member.name}")

        with open(target, "wb") as out:
            shutil.copyfileobj(file_obj, out)
        written += 1

    return written


def extract_archive(source: SourceArchive, destination: Union[str, Path]) -> Path:
    """Extract a tar stream into a destination directory.

    Directory entries create directories, file entries are copied byte for
    byte. Ownership, permissions and links are not preserved. Partial output
    is left in place on failure; cleaning it up is the caller's job.

    Args:
        source: Path to a tar file or a readable binary stream
        destination: Directory to populate (created if missing)

    Returns:
        The destination directory

    Raises:
        ExtractionError: If the stream is corrupt or truncated, or the
            destination cannot be written
    """
    destination = Path(destination)
    try:
        destination.mkdir(parents=True, exist_ok=True)
        destination = destination.resolve()

        if isinstance(source, (str, Path)):
            with tarfile.open(str(source), "r|*") as tar:
                written = _extract_members(tar, destination)
        else:
            with tarfile.open(fileobj=source, mode="r|*") as tar:
                written = _extract_members(tar, destination)

    except ExtractionError:
        raise
    except (tarfile.TarError, EOFError) as e:
        raise ExtractionError(f"Cannot read tar archive {source}: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Cannot extract into {destination}: {e}") from e

    logger.debug(f"Extracted {written} file(s) into {destination}")
    return destination


async def extract_archive_async(
    source: SourceArchive, destination: Union[str, Path]
) -> Path:
    """Run extract_archive in the default executor."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, extract_archive, source, destination)
