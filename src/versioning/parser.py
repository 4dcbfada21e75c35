"""Parsing of root requirements from CLI tokens and requirements files."""

import logging
from typing import List

import requirements
from packaging.requirements import InvalidRequirement, Requirement

from resolution.errors import RequirementParseError

logger = logging.getLogger(__name__)


def parse_requirement_token(token: str) -> Requirement:
    """Parse a single PEP 508 requirement string.

    Raises:
        RequirementParseError: If the token is empty or not valid PEP 508.
    """
    text = token.strip()
    if not text:
        raise RequirementParseError("Empty requirement")
    try:
        return Requirement(text)
    except InvalidRequirement as exc:
        raise RequirementParseError(f"Invalid requirement {text!r}: {exc}") from exc


def _strip_inline_comment(line: str) -> str:
    return line.split(" #", 1)[0].strip()


def parse_requirements_text(body: str, source: str = "<string>") -> List[Requirement]:
    """Parse the body of a requirements file into root requirements.

    Line handling (comments, blank lines, pip options) is delegated to
    requirements-parser; each surviving line is then parsed as PEP 508.
    Editable installs and local paths cannot be resolved against an index
    and are skipped.
    """
    parsed: List[Requirement] = []
    for entry in requirements.parse(body):
        if getattr(entry, "editable", False) or getattr(entry, "local_file", False):
            logger.warning("Skipping non-index requirement in %s: %s", source, entry.line)
            continue
        line = _strip_inline_comment(entry.line)
        if not line:
            continue
        try:
            parsed.append(parse_requirement_token(line))
        except RequirementParseError as exc:
            raise RequirementParseError(f"{source}: {exc}") from exc
    return parsed


def parse_requirements_file(path: str) -> List[Requirement]:
    """Read and parse a requirements file.

    Raises:
        OSError: If the file cannot be read.
        RequirementParseError: If any requirement line is invalid.
    """
    with open(path, "r", encoding="utf-8") as fh:
        body = fh.read()
    return parse_requirements_text(body, source=path)
