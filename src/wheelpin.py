"""wheelpin - Resolve requirements into pinned, platform-compatible wheel versions.

    Returns:
        int: Exit code
"""
import json
import logging
import sys
from typing import List, Optional

from packaging.requirements import Requirement

from args import parse_args
from cli_config import ConfigError, ResolverConfig, build_resolver_config
from constants import ExitCodes, OutputFormats
from common.logging_utils import add_file_handler, configure_logging
from registry.pypi import DocumentCache, IndexClient
from resolution import (
    IndexFetchError,
    RequirementParseError,
    ResolutionError,
    ResolutionTimeout,
    current_environment,
    resolve_sync,
)
from versioning.models import Resolution
from versioning.parser import parse_requirement_token, parse_requirements_file

logger = logging.getLogger(__name__)


def load_requirements(requirement_files: List[str], packages: List[str]) -> List[Requirement]:
    """Collect root requirements from files and single package tokens.

    Raises:
        OSError: If a requirements file cannot be read.
        RequirementParseError: If any requirement is invalid.
    """
    roots: List[Requirement] = []
    for path in requirement_files:
        roots.extend(parse_requirements_file(path))
    for token in packages:
        roots.append(parse_requirement_token(token))
    return roots


def run_resolution(roots: List[Requirement], config: ResolverConfig) -> Resolution:
    """Resolve ``roots`` against the configured index."""
    client = IndexClient(
        index_url=config.index_url,
        timeout=config.request_timeout,
        retries=config.retries,
        cache=DocumentCache(default_ttl=config.cache_ttl),
    )
    return resolve_sync(
        roots,
        client,
        environment=current_environment(config.environment),
        max_concurrency=config.max_concurrency,
        batch_size=config.batch_size,
        timeout=config.timeout,
    )


def _infer_format(output: Optional[str], explicit: Optional[str]) -> OutputFormats:
    if explicit:
        return OutputFormats(explicit)
    if output and output.lower().endswith(".json"):
        return OutputFormats.JSON
    return OutputFormats.TEXT


def render_resolution(resolution: Resolution, fmt: OutputFormats) -> str:
    """Render pins in the requested format, sorted by package name."""
    if fmt == OutputFormats.JSON:
        return json.dumps(resolution.to_dict(), indent=2) + "\n"
    pins = resolution.pins()
    return "\n".join(pins) + "\n" if pins else ""


def export_resolution(resolution: Resolution, output: Optional[str], fmt: OutputFormats) -> None:
    """Write rendered pins to ``output`` or stdout.

    Raises:
        OSError: If the output file cannot be written.
    """
    body = render_resolution(resolution, fmt)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(body)
        logger.info("Wrote %d pin(s) to %s", len(resolution), output)
    else:
        sys.stdout.write(body)


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    configure_logging(args.LOG_LEVEL)
    if args.LOG_FILE:
        add_file_handler(args.LOG_FILE)

    try:
        config = build_resolver_config(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value

    try:
        roots = load_requirements(args.REQUIREMENT_FILES, args.PACKAGES)
    except OSError as exc:
        logger.error("Could not read requirements: %s", exc)
        return ExitCodes.FILE_ERROR.value
    except RequirementParseError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value

    if not roots:
        logger.warning("No requirements to resolve.")

    try:
        resolution = run_resolution(roots, config)
    except ResolutionTimeout as exc:
        logger.error("%s", exc)
        return ExitCodes.RESOLUTION_TIMEOUT.value
    except IndexFetchError as exc:
        logger.error("Index error: %s", exc)
        return ExitCodes.CONNECTION_ERROR.value
    except ResolutionError as exc:
        logger.error("Resolution failed: %s", exc)
        return ExitCodes.RESOLUTION_ERROR.value

    try:
        export_resolution(resolution, args.OUTPUT, _infer_format(args.OUTPUT, args.OUTPUT_FORMAT))
    except OSError as exc:
        logger.error("Could not write output: %s", exc)
        return ExitCodes.FILE_ERROR.value
    return ExitCodes.SUCCESS.value


if __name__ == "__main__":
    sys.exit(main())
