"""Selection of one compatible wheel from an index listing."""

import logging
from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, Optional

from packaging.requirements import Requirement
from packaging.specifiers import SpecifierSet
from packaging.tags import Tag
from packaging.utils import InvalidWheelFilename, NormalizedName, parse_wheel_filename
from packaging.version import InvalidVersion, Version

from versioning.models import CandidateFile, CandidateListing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedCandidate:
    """The parts of a wheel filename the filter needs."""
    name: NormalizedName
    version: Version
    tags: FrozenSet[Tag]


def parse_candidate_filename(filename: str) -> Optional[ParsedCandidate]:
    """Parse a wheel filename; anything else (sdists, junk) returns None."""
    try:
        name, version, _build, tags = parse_wheel_filename(filename)
    except (InvalidWheelFilename, InvalidVersion):
        return None
    return ParsedCandidate(name=name, version=version, tags=tags)


def requirement_specifier(requirement: Requirement) -> Optional[SpecifierSet]:
    """Return the version constraint, or None for a direct-URL requirement.

    A URL requirement is resolved as if unconstrained; the locator itself is
    not honored.
    """
    if requirement.url:
        logger.warning(
            "Direct URL for %s is not honored; using newest compatible wheel instead of %s",
            requirement.name,
            requirement.url,
        )
        return None
    return requirement.specifier


def _satisfies(version: Version, specifier: Optional[SpecifierSet]) -> bool:
    if specifier is None:
        return True
    return all(clause.contains(version) for clause in specifier)


def select_candidate(
    listing: CandidateListing,
    requirement: Requirement,
    tags: AbstractSet[Tag],
) -> Optional[CandidateFile]:
    """Pick the best file in ``listing`` for ``requirement``.

    Files are scanned newest-last-listed first; the first one that is a wheel,
    shares a tag with ``tags`` and satisfies every specifier clause wins.
    Equal versions are therefore tie-broken by listing order.
    """
    specifier = requirement_specifier(requirement)
    for file in reversed(listing.files):
        parsed = parse_candidate_filename(file.filename)
        if parsed is None:
            continue
        if parsed.tags.isdisjoint(tags):
            continue
        if not _satisfies(parsed.version, specifier):
            continue
        return file
    return None
