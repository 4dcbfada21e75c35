"""Argument parsing functionality for wheelpin."""

import argparse
from constants import Constants, OutputFormats


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="wheelpin",
        description=(
            "wheelpin - Resolve requirements into pinned, platform-compatible wheel versions"
        ),
        add_help=True,
    )

    input_group = parser.add_argument_group("input")
    input_group.add_argument("-r", "--requirement",
                        dest="REQUIREMENT_FILES",
                        help="Resolve the requirements listed in the given requirements file",
                        action="append", type=str,
                        default=[])
    input_group.add_argument("-p", "--package",
                        dest="PACKAGES",
                        help="A single PEP 508 requirement, e.g. 'flask>=2'. May be repeated.",
                        action="append", type=str,
                        default=[])

    parser.add_argument("-i", "--index-url",
                        dest="INDEX_URL",
                        help=f"Base URL of the simple index (default: {Constants.INDEX_URL})",
                        action="store",
                        type=str)
    parser.add_argument("--concurrency",
                        dest="MAX_CONCURRENCY",
                        help=f"Maximum concurrent index requests (default: {Constants.MAX_CONCURRENT_FETCHES})",
                        action="store",
                        type=int)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Abort if resolution takes longer than this many seconds",
                        action="store",
                        type=float)
    parser.add_argument("--request-timeout",
                        dest="REQUEST_TIMEOUT",
                        help=f"Per-request HTTP timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store",
                        type=float)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a YAML configuration file",
                        action="store",
                        type=str)

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Write the pins to this file instead of stdout",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format (text or json). If not specified, inferred from --output extension; defaults to text.",
                        action="store",
                        type=str.lower,
                        choices=[f.value for f in OutputFormats])

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help=f"Set the logging level (default: ${Constants.ENV_LOG_LEVEL} or INFO)",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    args = parser.parse_args(argv)
    if not args.REQUIREMENT_FILES and not args.PACKAGES:
        parser.error("at least one of -r/--requirement or -p/--package is required")
    return args
