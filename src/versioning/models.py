"""Data models for index documents and resolution results."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from packaging.requirements import Requirement
from packaging.specifiers import SpecifierSet
from packaging.utils import NormalizedName
from packaging.version import Version


@dataclass
class CandidateFile:
    """One distributable artifact listed on the index for a package.

    Candidate selection reads only ``filename``. ``hashes``,
    ``requires_python`` and ``yanked`` are carried for callers but never
    exclude a file.
    """
    filename: str
    url: str
    hashes: Dict[str, str] = field(default_factory=dict)
    requires_python: Optional[str] = None
    yanked: bool = False
    core_metadata: bool = False  # index serves "<url>.metadata"


@dataclass
class CandidateListing:
    """Index response for one package, in index-supplied order."""
    name: str
    files: List[CandidateFile] = field(default_factory=list)


@dataclass
class DistributionMetadata:
    """Core metadata of one chosen distribution file.

    ``requires_python`` is informational; the resolver does not check it.
    """
    name: str
    version: Version
    requires_dist: List[Requirement] = field(default_factory=list)
    requires_python: Optional[SpecifierSet] = None


class Resolution(Mapping):
    """Normalized package name to pinned version.

    Append-only: once a name is pinned it is never replaced or removed.
    """

    def __init__(self) -> None:
        self._pins: Dict[NormalizedName, Version] = {}

    def pin(self, name: NormalizedName, version: Version) -> bool:
        """Record ``name`` at ``version``; returns False if already pinned."""
        if name in self._pins:
            return False
        self._pins[name] = version
        return True

    def __getitem__(self, name: str) -> Version:
        return self._pins[name]

    def __iter__(self) -> Iterator[NormalizedName]:
        return iter(self._pins)

    def __len__(self) -> int:
        return len(self._pins)

    def __repr__(self) -> str:
        return f"Resolution({self.to_dict()!r})"

    def pins(self) -> List[str]:
        """Return ``name==version`` lines sorted by name."""
        return [f"{name}=={self._pins[name]}" for name in sorted(self._pins)]

    def to_dict(self) -> Dict[str, str]:
        """Return a name-sorted plain dict with string versions."""
        return {name: str(self._pins[name]) for name in sorted(self._pins)}
