"""Tests for wheel candidate selection."""

import logging

from packaging.requirements import Requirement
from packaging.tags import Tag
from packaging.version import Version

from resolution.candidates import (
    parse_candidate_filename,
    requirement_specifier,
    select_candidate,
)
from versioning.models import CandidateFile, CandidateListing

from index_doubles import TAGS


def _listing(*filenames):
    return CandidateListing(
        name="pkga",
        files=[CandidateFile(filename=f, url=f"https://files.example/{f}") for f in filenames],
    )


class TestParseCandidateFilename:
    """Tests for wheel filename parsing."""

    def test_wheel_parses(self):
        parsed = parse_candidate_filename("pkgA-2.0-py3-none-any.whl")
        assert parsed is not None
        assert parsed.name == "pkga"
        assert parsed.version == Version("2.0")
        assert Tag("py3", "none", "any") in parsed.tags

    def test_compressed_tag_sets_expand(self):
        parsed = parse_candidate_filename("pkga-1.0-py2.py3-none-any.whl")
        assert Tag("py2", "none", "any") in parsed.tags
        assert Tag("py3", "none", "any") in parsed.tags

    def test_sdist_is_unparsable(self):
        assert parse_candidate_filename("pkga-1.0.tar.gz") is None

    def test_invalid_version_is_unparsable(self):
        assert parse_candidate_filename("pkga-not_a_version-py3-none-any.whl") is None


class TestSelectCandidate:
    """Tests for the reverse-scan selection policy."""

    def test_newest_satisfying_version_selected(self):
        listing = _listing("pkga-1.0-py3-none-any.whl", "pkga-2.0-py3-none-any.whl")
        chosen = select_candidate(listing, Requirement("pkgA>=1.0"), TAGS)
        assert chosen.filename == "pkga-2.0-py3-none-any.whl"

    def test_every_specifier_clause_must_hold(self):
        listing = _listing(
            "pkga-1.0-py3-none-any.whl",
            "pkga-1.5-py3-none-any.whl",
            "pkga-2.0-py3-none-any.whl",
        )
        chosen = select_candidate(listing, Requirement("pkga>=1.0,<2,!=1.5"), TAGS)
        assert chosen.filename == "pkga-1.0-py3-none-any.whl"

    def test_incompatible_tags_skipped(self):
        listing = _listing(
            "pkga-1.0-py3-none-any.whl",
            "pkga-2.0-cp312-cp312-win_amd64.whl",
        )
        chosen = select_candidate(listing, Requirement("pkga"), TAGS)
        assert chosen.filename == "pkga-1.0-py3-none-any.whl"

    def test_unparsable_entries_ignored(self):
        listing = _listing("pkga-1.0-py3-none-any.whl", "pkga-3.0.tar.gz", "garbage.txt")
        chosen = select_candidate(listing, Requirement("pkga"), TAGS)
        assert chosen.filename == "pkga-1.0-py3-none-any.whl"

    def test_yanked_and_requires_python_do_not_exclude(self):
        older = CandidateFile(filename="pkga-1.0-py3-none-any.whl", url="https://files.example/a")
        newest = CandidateFile(
            filename="pkga-2.0-py3-none-any.whl",
            url="https://files.example/b",
            requires_python=">=4",
            yanked=True,
        )
        listing = CandidateListing(name="pkga", files=[older, newest])
        assert select_candidate(listing, Requirement("pkga"), TAGS) is newest

    def test_only_source_archive_yields_none(self):
        listing = _listing("pkga-1.0.tar.gz", "pkga-1.0.zip")
        assert select_candidate(listing, Requirement("pkga"), TAGS) is None

    def test_no_satisfying_version_yields_none(self):
        listing = _listing("pkga-1.0-py3-none-any.whl")
        assert select_candidate(listing, Requirement("pkga>=2"), TAGS) is None

    def test_same_version_tie_broken_by_listing_order(self):
        listing = _listing("pkga-1.0-py2.py3-none-any.whl", "pkga-1.0-py3-none-any.whl")
        chosen = select_candidate(listing, Requirement("pkga==1.0"), TAGS)
        assert chosen.filename == "pkga-1.0-py3-none-any.whl"

    def test_listing_order_wins_over_version_order(self):
        # Not a max-by-version reduction: the last qualifying entry wins.
        listing = _listing("pkga-2.0-py3-none-any.whl", "pkga-1.0-py3-none-any.whl")
        chosen = select_candidate(listing, Requirement("pkga"), TAGS)
        assert chosen.filename == "pkga-1.0-py3-none-any.whl"

    def test_empty_listing(self):
        assert select_candidate(_listing(), Requirement("pkga"), TAGS) is None


class TestDirectUrlRequirements:
    """A URL requirement is treated as unconstrained."""

    def test_url_requirement_has_no_specifier(self, caplog):
        req = Requirement("pkga @ https://example.com/pkga-1.0-py3-none-any.whl")
        with caplog.at_level(logging.WARNING):
            assert requirement_specifier(req) is None
        assert "not honored" in caplog.text

    def test_url_requirement_picks_newest_compatible(self):
        listing = _listing("pkga-1.0-py3-none-any.whl", "pkga-2.0-py3-none-any.whl")
        req = Requirement("pkga @ https://example.com/pkga-1.0-py3-none-any.whl")
        chosen = select_candidate(listing, req, TAGS)
        assert chosen.filename == "pkga-2.0-py3-none-any.whl"
