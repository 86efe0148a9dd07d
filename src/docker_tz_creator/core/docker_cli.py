"""Build backend that drives the docker command line client."""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Optional, Type

from ..exceptions import BuildBackendError, ExportError

logger = logging.getLogger(__name__)


class DockerCliBackend:
    """Build and export images with `docker build` and `docker save`."""

    def __init__(self, docker_binary: str = "docker", timeout: Optional[float] = None) -> None:
        """Initialize the backend.

        Args:
            docker_binary: docker executable name or path
            timeout: Seconds to wait for each command (None waits forever)
        """
        self.docker_binary = docker_binary
        self.timeout = timeout

    async def __aenter__(self) -> "DockerCliBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    async def build(self, context_dir: Path, image_ref: str) -> int:
        """Run `docker build --tag=<image_ref> .` inside context_dir."""
        logger.info(f"Building Docker image: {image_ref}")
        return await self._run(
            [self.docker_binary, "build", f"--tag={image_ref}", "."],
            cwd=context_dir,
            error_cls=BuildBackendError,
        )

    async def export(self, image_ref: str, destination: Path) -> int:
        """Run `docker save -o <destination> <image_ref>`."""
        logger.info(f"Exporting Docker image to: {destination}")
        return await self._run(
            [self.docker_binary, "save", "-o", str(destination), image_ref],
            cwd=None,
            error_cls=ExportError,
        )

    async def _run(
        self,
        command: list[str],
        cwd: Optional[Path],
        error_cls: Type[BuildBackendError],
    ) -> int:
        """Run a command with inherited stdio and return its exit status.

        Raises:
            BuildBackendError: (or error_cls) if the command cannot be
                started or does not finish within the timeout
        """
        logger.debug(f"Running: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command, cwd=str(cwd) if cwd else None
            )
        except OSError as e:
            raise error_cls(f"Cannot run {command[0]}: {e}") from e

        try:
            return await asyncio.wait_for(process.wait(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise error_cls(
                f"{command[0]} {command[1]} timed out after {self.timeout}s"
            ) from e
