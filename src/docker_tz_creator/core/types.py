"""Configuration types for the image conversion pipeline."""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from ..exceptions import ConfigurationError

DEFAULT_BUILD_TIMEOUT = 1800.0
BACKENDS = ("cli", "engine")

DOCKERFILE_TEMPLATE = """\
FROM {base_image}
# Set timezone ({timezone})
RUN apk update && \\
    apk add --no-cache tzdata && \\
    cp /usr/share/zoneinfo/{timezone} /etc/localtime && \\
    echo "{timezone}" > /etc/timezone
WORKDIR {workdir}
COPY {artifact_name} {artifact_name}
ENTRYPOINT {entrypoint}
ENV TZ={timezone}
"""


@dataclass(frozen=True)
class RecipeConfig:
    """Fixed build recipe parameters."""

    base_image: str = "eclipse-temurin:8-jre-alpine"
    timezone: str = "Africa/Cairo"
    artifact_name: str = "app.jar"
    artifact_path: str = "opt/app/app.jar"  # Conventional location inside a layer
    artifact_extension: str = ".jar"
    workdir: str = "/opt/app"
    entrypoint: tuple[str, ...] = ("java", "-jar", "app.jar")

    def render_dockerfile(self) -> str:
        """Render the Dockerfile for this recipe."""
        return DOCKERFILE_TEMPLATE.format(
            base_image=self.base_image,
            timezone=self.timezone,
            workdir=self.workdir,
            artifact_name=self.artifact_name,
            entrypoint=json.dumps(list(self.entrypoint)),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Pipeline configuration.

    Attributes:
        recipe: Build recipe parameters
        build_timeout: Seconds to wait for each backend call (None waits forever)
        backend: "cli" to shell out to docker, "engine" to use the Engine API
        docker_binary: Executable used by the cli backend
        docker_socket: Unix socket used by the engine backend
        temp_root: Parent directory for all temporary directories
    """

    recipe: RecipeConfig = field(default_factory=RecipeConfig)
    build_timeout: Optional[float] = DEFAULT_BUILD_TIMEOUT
    backend: str = "cli"
    docker_binary: str = "docker"
    docker_socket: str = "/var/run/docker.sock"
    temp_root: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}"
            )
        if self.build_timeout is not None and self.build_timeout <= 0:
            raise ConfigurationError("Build timeout must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Build configuration from TZ_CREATOR_* environment variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        recipe = defaults.recipe
        if env.get("TZ_CREATOR_TIMEZONE"):
            recipe = replace(recipe, timezone=env["TZ_CREATOR_TIMEZONE"])
        if env.get("TZ_CREATOR_BASE_IMAGE"):
            recipe = replace(recipe, base_image=env["TZ_CREATOR_BASE_IMAGE"])

        build_timeout = defaults.build_timeout
        raw_timeout = env.get("TZ_CREATOR_BUILD_TIMEOUT")
        if raw_timeout:
            build_timeout = parse_timeout(raw_timeout)

        return cls(
            recipe=recipe,
            build_timeout=build_timeout,
            backend=env.get("TZ_CREATOR_BACKEND") or defaults.backend,
            docker_binary=env.get("TZ_CREATOR_DOCKER_BINARY") or defaults.docker_binary,
            docker_socket=env.get("TZ_CREATOR_DOCKER_SOCKET") or defaults.docker_socket,
        )


def parse_timeout(value: str) -> Optional[float]:
    """Parse a timeout in seconds; "0" or "none" disables it."""
    if value.strip().lower() in ("0", "none"):
        return None
    try:
        timeout = float(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid build timeout: {value!r}") from e
    if timeout <= 0:
        raise ConfigurationError(f"Invalid build timeout: {value!r}")
    return timeout
