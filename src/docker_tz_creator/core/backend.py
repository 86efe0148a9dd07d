"""Build backend capability used by the build orchestrator."""

from pathlib import Path
from typing import Protocol, runtime_checkable

from .types import PipelineConfig


@runtime_checkable
class BuildBackend(Protocol):
    """Something that can build an image from a context and export it.

    Both calls return an exit status; anything non-zero is a failure.
    Implementations may also raise BuildBackendError or ExportError
    themselves when they can describe the failure better.
    """

    async def build(self, context_dir: Path, image_ref: str) -> int: ...

    async def export(self, image_ref: str, destination: Path) -> int: ...


def create_backend(config: PipelineConfig):
    """Create the backend selected by config.backend.

    The returned object is an async context manager yielding itself.
    """
    if config.backend == "engine":
        from .engine_client import DockerEngineBackend

        return DockerEngineBackend(
            socket_path=config.docker_socket, timeout=config.build_timeout
        )

    from .docker_cli import DockerCliBackend

    return DockerCliBackend(docker_binary=config.docker_binary, timeout=config.build_timeout)
