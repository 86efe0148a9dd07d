"""Command line entry point for the Docker image timezone creator."""

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .core.backend import create_backend
from .core.types import BACKENDS, PipelineConfig, parse_timeout
from .exceptions import ConfigurationError
from .pipeline import BatchSummary, process_directory

logger = logging.getLogger(__name__)

INPUT_DIRNAME = "old_tars"
OUTPUT_DIRNAME = "new_tars"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docker-tz-creator",
        description=(
            "Rebuild every Docker image archive in old_tars/ with a fixed timezone "
            "and write the results to new_tars/."
        ),
    )
    parser.add_argument(
        "working_dir",
        nargs="?",
        default=".",
        help="directory holding old_tars/ and new_tars/ (default: current directory)",
    )
    parser.add_argument("--input-dir", type=Path, help="override the input directory")
    parser.add_argument("--output-dir", type=Path, help="override the output directory")
    parser.add_argument("--timezone", help="IANA timezone of the new image")
    parser.add_argument("--base-image", help="base runtime image of the new image")
    parser.add_argument(
        "--timeout",
        help="seconds to wait for each build/export call ('none' to wait forever)",
    )
    parser.add_argument("--backend", choices=BACKENDS, help="build backend to use")
    parser.add_argument("--docker-binary", help="docker executable for the cli backend")
    parser.add_argument("--docker-socket", help="Docker daemon socket for the engine backend")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only log warnings and errors")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s", force=True)


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Apply command line overrides on top of the environment configuration.

    Raises:
        ConfigurationError: If a value is invalid
    """
    config = PipelineConfig.from_env()

    recipe = config.recipe
    if args.timezone:
        recipe = replace(recipe, timezone=args.timezone)
    if args.base_image:
        recipe = replace(recipe, base_image=args.base_image)

    overrides = {"recipe": recipe}
    if args.timeout is not None:
        overrides["build_timeout"] = parse_timeout(args.timeout)
    if args.backend:
        overrides["backend"] = args.backend
    if args.docker_binary:
        overrides["docker_binary"] = args.docker_binary
    if args.docker_socket:
        overrides["docker_socket"] = args.docker_socket

    return replace(config, **overrides)


async def run_batch(input_dir: Path, output_dir: Path, config: PipelineConfig) -> BatchSummary:
    async with create_backend(config) as backend:
        return await process_directory(input_dir, output_dir, backend, config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the batch conversion.

    Returns:
        0 if every archive converted, 1 on setup errors or any failed archive
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    base_dir = Path(args.working_dir)
    if not base_dir.is_dir():
        logger.error(f"Working directory does not exist: {base_dir}")
        return 1

    input_dir = args.input_dir or base_dir / INPUT_DIRNAME
    output_dir = args.output_dir or base_dir / OUTPUT_DIRNAME

    if not input_dir.is_dir():
        logger.error(f"Input directory does not exist: {input_dir.absolute()}")
        logger.error("Create it and place your Docker tar files there.")
        return 1

    try:
        config = load_config(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if not output_dir.exists():
        try:
            output_dir.mkdir(parents=True)
        except OSError as e:
            logger.error(f"Failed to create output directory {output_dir.absolute()}: {e}")
            return 1
        logger.info(f"Created output directory: {output_dir.absolute()}")

    summary = asyncio.run(run_batch(input_dir, output_dir, config))
    return 0 if summary.ok else 1
