"""Parsing of simple-index (PEP 691) listings and wheel core metadata."""
from __future__ import annotations

import io
import logging
import urllib.parse
import zipfile
from typing import Any, Dict, List, Optional

from packaging.metadata import parse_email
from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from resolution.errors import IndexFetchError
from versioning.models import CandidateFile, CandidateListing, DistributionMetadata

logger = logging.getLogger(__name__)


def _has_core_metadata(entry: Dict[str, Any]) -> bool:
    # PEP 714 renamed "data-dist-info-metadata" to "core-metadata"
    value = entry.get("core-metadata", entry.get("data-dist-info-metadata", False))
    return bool(value)


def _is_yanked(entry: Dict[str, Any]) -> bool:
    value = entry.get("yanked", False)
    return value is not False and value is not None


def parse_listing(name: str, document: Any, base_url: str) -> CandidateListing:
    """Build a CandidateListing from a decoded PEP 691 JSON document.

    File order is preserved; relative URLs are resolved against ``base_url``.

    Raises:
        IndexFetchError: If the document does not have the expected shape.
    """
    if not isinstance(document, dict) or not isinstance(document.get("files"), list):
        raise IndexFetchError(f"Malformed index listing for {name}", url=base_url)

    files: List[CandidateFile] = []
    for entry in document["files"]:
        if not isinstance(entry, dict):
            continue
        filename = entry.get("filename")
        url = entry.get("url")
        if not isinstance(filename, str) or not isinstance(url, str):
            continue
        hashes = entry.get("hashes") or {}
        files.append(
            CandidateFile(
                filename=filename,
                url=urllib.parse.urljoin(base_url, url),
                hashes=dict(hashes) if isinstance(hashes, dict) else {},
                requires_python=entry.get("requires-python") or None,
                yanked=_is_yanked(entry),
                core_metadata=_has_core_metadata(entry),
            )
        )
    return CandidateListing(name=document.get("name", name), files=files)


def parse_metadata(body: bytes, source: Optional[str] = None) -> DistributionMetadata:
    """Parse a core metadata (METADATA / PKG-INFO) document.

    Raises:
        IndexFetchError: On missing name/version or unparsable fields.
    """
    raw, _unparsed = parse_email(body)
    name = raw.get("name")
    version_text = raw.get("version")
    if not name or not version_text:
        raise IndexFetchError("Metadata is missing Name or Version", url=source)

    try:
        version = Version(version_text)
    except InvalidVersion as exc:
        raise IndexFetchError(f"Invalid version {version_text!r} in metadata", url=source) from exc

    requires_dist: List[Requirement] = []
    for text in raw.get("requires_dist", []):
        try:
            requires_dist.append(Requirement(text))
        except InvalidRequirement as exc:
            raise IndexFetchError(
                f"Invalid Requires-Dist {text!r} in metadata for {name}", url=source
            ) from exc

    requires_python = None
    if raw.get("requires_python"):
        try:
            requires_python = SpecifierSet(raw["requires_python"])
        except InvalidSpecifier:
            logger.debug("Ignoring invalid Requires-Python %r for %s", raw["requires_python"], name)

    return DistributionMetadata(
        name=name,
        version=version,
        requires_dist=requires_dist,
        requires_python=requires_python,
    )


def read_wheel_metadata(content: bytes, filename: str) -> bytes:
    """Extract ``*.dist-info/METADATA`` from wheel archive bytes.

    Raises:
        IndexFetchError: If the archive is corrupt or has no METADATA.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            for member in archive.namelist():
                parts = member.split("/")
                if len(parts) == 2 and parts[0].endswith(".dist-info") and parts[1] == "METADATA":
                    return archive.read(member)
    except zipfile.BadZipFile as exc:
        raise IndexFetchError(f"Corrupt wheel archive {filename}") from exc
    raise IndexFetchError(f"No METADATA found in {filename}")
