"""Build backend that talks to the Docker Engine HTTP API."""

import asyncio
import io
import json
import logging
import tarfile
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp

from ..exceptions import BuildBackendError, ExportError

logger = logging.getLogger(__name__)


def pack_build_context(context_dir: Path) -> bytes:
    """Pack a build context directory into an uncompressed tar (sync helper)."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for path in sorted(Path(context_dir).iterdir()):
            tar.add(str(path), arcname=path.name)
    return buffer.getvalue()


class DockerEngineBackend:
    """Docker Engine API async client for building and saving images."""

    def __init__(
        self,
        socket_path: str = "/var/run/docker.sock",
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        connector: Optional[aiohttp.BaseConnector] = None,
        chunk_size: int = 1024 * 1024,
    ) -> None:
        """Initialize the engine backend.

        Args:
            socket_path: Docker daemon unix socket, used when base_url is None
            base_url: HTTP endpoint of the engine (e.g., http://localhost:2375)
            timeout: Total seconds allowed for each request
            connector: aiohttp connector; a UnixConnector is created by default
            chunk_size: Size of chunks written while exporting
        """
        self.socket_path = socket_path
        self.base_url = (base_url or "http://localhost").rstrip("/")
        self.timeout = timeout
        self.connector = connector
        self.chunk_size = chunk_size
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "DockerEngineBackend":
        """Enter async context manager."""
        if not self.session:
            connector = self.connector
            if connector is None and self.base_url == "http://localhost":
                connector = aiohttp.UnixConnector(path=self.socket_path)
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise BuildBackendError("DockerEngineBackend used outside 'async with'")
        return self.session

    async def build(self, context_dir: Path, image_ref: str) -> int:
        """Build an image from a context directory via POST /build.

        Args:
            context_dir: Directory holding the Dockerfile and its inputs
            image_ref: Tag to apply to the built image

        Returns:
            0 on success

        Raises:
            BuildBackendError: If the engine reports an error or is unreachable
        """
        session = self._require_session()
        logger.info(f"Building Docker image: {image_ref}")

        loop = asyncio.get_event_loop()
        context_data = await loop.run_in_executor(None, pack_build_context, context_dir)

        try:
            async with session.post(
                f"{self.base_url}/build",
                params={"t": image_ref},
                data=context_data,
                headers={"Content-Type": "application/x-tar"},
            ) as resp:
                if resp.status != 200:
                    detail = await resp.text()
                    raise BuildBackendError(
                        f"Docker build failed with HTTP {resp.status}: {detail.strip()}"
                    )

                # The engine streams one JSON message per line
                async for line in resp.content:
                    if not line.strip():
                        continue
                    try:
                        message = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(line.decode("utf-8", "replace").rstrip())
                        continue

                    if message.get("error"):
                        raise BuildBackendError(f"Docker build failed: {message['error']}")
                    if message.get("stream"):
                        logger.debug(message["stream"].rstrip())

        except asyncio.TimeoutError as e:
            raise BuildBackendError(f"Docker build timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise BuildBackendError(f"Failed to reach Docker engine: {e}") from e

        return 0

    async def export(self, image_ref: str, destination: Path) -> int:
        """Save an image to a tar file via GET /images/<ref>/get.

        Args:
            image_ref: Image to export
            destination: Output tar path

        Returns:
            0 on success

        Raises:
            ExportError: If the engine reports an error or is unreachable
        """
        session = self._require_session()
        logger.info(f"Exporting Docker image to: {destination}")

        try:
            async with session.get(f"{self.base_url}/images/{image_ref}/get") as resp:
                if resp.status != 200:
                    detail = await resp.text()
                    raise ExportError(
                        f"Docker save failed with HTTP {resp.status}: {detail.strip()}"
                    )

                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in resp.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)

        except asyncio.TimeoutError as e:
            raise ExportError(f"Docker save timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ExportError(f"Failed to reach Docker engine: {e}") from e
        except OSError as e:
            raise ExportError(f"Cannot write {destination}: {e}") from e

        return 0
