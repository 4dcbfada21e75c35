"""Tests for the resolution loop."""

import asyncio
import logging

import pytest
from packaging.requirements import Requirement
from packaging.version import Version

from resolution.dispatcher import FetchListing, ListingReady, MetadataReady
from resolution.errors import DispatchError, IndexFetchError, ResolutionError, ResolutionTimeout
from resolution.resolver import Resolver, ResolverState, resolve
from versioning.models import CandidateListing

from index_doubles import (
    ENVIRONMENT,
    TAGS,
    FakeIndex,
    ScriptedDispatcher,
    metadata_requests,
    requested_names,
)


def _reqs(*texts):
    return [Requirement(t) for t in texts]


def _resolve(index, *roots, **kwargs):
    return asyncio.run(resolve(_reqs(*roots), index, environment=ENVIRONMENT, tags=TAGS, **kwargs))


def _scripted(index, *roots, observer=None):
    dispatcher = ScriptedDispatcher(index)
    resolver = Resolver(dispatcher, environment=ENVIRONMENT, tags=TAGS)
    if observer is not None:
        dispatcher.observer = lambda: observer(resolver)
    resolution = asyncio.run(resolver.run(_reqs(*roots)))
    return resolver, dispatcher, resolution


class TestResolveScenarios:
    """End-to-end scenarios through the real dispatcher."""

    def test_single_root_picks_newest(self):
        index = FakeIndex()
        index.add("pkgA", "1.0")
        index.add("pkgA", "2.0")

        resolution = _resolve(index, "pkgA>=1.0")

        assert resolution.to_dict() == {"pkga": "2.0"}
        assert resolution["pkga"] == Version("2.0")

    def test_transitive_dependencies_resolved(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb>=1", "pkgc"])
        index.add("pkgb", "1.0", requires=["pkgd<2"])
        index.add("pkgc", "3.1")
        index.add("pkgd", "1.5")
        index.add("pkgd", "2.0")

        resolution = _resolve(index, "pkga")

        assert resolution.to_dict() == {"pkga": "1.0", "pkgb": "1.0", "pkgc": "3.1", "pkgd": "1.5"}

    def test_cycle_terminates_with_each_name_once(self):
        index = FakeIndex()
        index.add("pkgA", "1.0", requires=["pkgB"])
        index.add("pkgB", "1.0", requires=["pkgA"])

        resolution = _resolve(index, "pkgA")

        assert resolution.to_dict() == {"pkga": "1.0", "pkgb": "1.0"}
        assert index.listing_calls.count("pkga") == 1
        assert index.listing_calls.count("pkgb") == 1

    def test_source_only_root_is_dropped(self, caplog):
        index = FakeIndex()
        index.add_file("pkgA", "pkgA-1.0.tar.gz")

        with caplog.at_level(logging.WARNING):
            resolution = _resolve(index, "pkgA")

        assert len(resolution) == 0
        assert "No compatible wheel found" in caplog.text
        assert index.metadata_calls == []

    def test_unsatisfiable_dependency_vanishes(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb>=5"])
        index.add("pkgb", "1.0", requires=["pkgc"])
        index.add("pkgc", "1.0")

        resolution = _resolve(index, "pkga")

        assert resolution.to_dict() == {"pkga": "1.0"}
        assert "pkgc" not in index.listing_calls

    def test_extra_gated_dependency_not_requested(self):
        index = FakeIndex()
        index.add("pkgA", "1.0", requires=['pkgB; extra == "x"'])
        index.add("pkgB", "1.0")

        resolution = _resolve(index, "pkgA")

        assert resolution.to_dict() == {"pkga": "1.0"}
        assert "pkgb" not in index.listing_calls

    def test_active_extra_enables_dependency(self):
        index = FakeIndex()
        index.add("pkgA", "1.0", requires=['pkgB; extra == "x"', 'pkgC; extra == "y"'])
        index.add("pkgB", "1.0")
        index.add("pkgC", "1.0")

        resolution = _resolve(index, "pkgA[x]")

        assert resolution.to_dict() == {"pkga": "1.0", "pkgb": "1.0"}

    def test_environment_marker_gates_dependency(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=['pkgwin; sys_platform == "win32"', 'pkglinux; sys_platform == "linux"'])
        index.add("pkgwin", "1.0")
        index.add("pkglinux", "1.0")

        resolution = _resolve(index, "pkga")

        assert resolution.to_dict() == {"pkga": "1.0", "pkglinux": "1.0"}

    def test_gated_dependency_reachable_another_way(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=['pkgb; extra == "x"', "pkgc"])
        index.add("pkgc", "1.0", requires=["pkgb"])
        index.add("pkgb", "1.0")

        resolution = _resolve(index, "pkga")

        assert "pkgb" in resolution

    def test_transitive_fetch_failure_aborts_run(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb"])
        index.failing["pkgb"] = IndexFetchError("connection reset")

        with pytest.raises(IndexFetchError, match="connection reset"):
            _resolve(index, "pkga")
        assert "pkga" in index.listing_calls

    def test_unexpected_client_error_wrapped(self):
        index = FakeIndex()
        index.failing["pkga"] = ConnectionError("boom")

        with pytest.raises(IndexFetchError) as excinfo:
            _resolve(index, "pkga")
        assert isinstance(excinfo.value.__cause__, ConnectionError)

    def test_missing_package_is_fatal(self):
        index = FakeIndex()

        with pytest.raises(IndexFetchError):
            _resolve(index, "doesnotexist")

    def test_no_requirements_resolves_empty(self):
        assert len(_resolve(FakeIndex())) == 0

    def test_names_normalized(self):
        index = FakeIndex()
        index.add("Zope.Interface", "5.0", requires=["zope_event"])
        index.add("zope-event", "4.0")

        resolution = _resolve(index, "Zope.Interface")

        assert resolution.to_dict() == {"zope-event": "4.0", "zope-interface": "5.0"}

    def test_determinism_across_runs(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb", "pkgc", "pkgd"])
        for name in ("pkgb", "pkgc", "pkgd"):
            index.add(name, "1.0", requires=["pkge"])
            index.add(name, "2.0", requires=["pkge<2"])
        index.add("pkge", "1.0")
        index.add("pkge", "2.0")

        first = _resolve(index, "pkga")
        second = _resolve(index, "pkga", max_concurrency=1, batch_size=1)

        assert first.pins() == second.pins()


class TestResolverTimeout:
    """Tests for the wall-clock cap."""

    def test_stalled_fetch_raises_timeout(self):
        class _StalledIndex(FakeIndex):
            async def fetch_listing(self, name):
                await asyncio.Event().wait()

        with pytest.raises(ResolutionTimeout):
            _resolve(_StalledIndex(), "pkga", timeout=0.05)


class TestResolverLoop:
    """Step-by-step tests through a scripted dispatcher."""

    def test_first_wins_without_conflict_check(self):
        index = FakeIndex()
        index.add("pkgA", "1.0", requires=["pkgC<2"])
        index.add("pkgB", "1.0", requires=["pkgC>=2"])
        index.add("pkgC", "1.0")
        index.add("pkgC", "2.0")

        _, dispatcher, resolution = _scripted(index, "pkgA", "pkgB")

        assert resolution.to_dict() == {"pkga": "1.0", "pkgb": "1.0", "pkgc": "1.0"}
        assert requested_names(dispatcher).count("pkgc") == 1

    def test_in_flight_and_resolution_stay_disjoint(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb", "pkgc"])
        index.add("pkgb", "1.0", requires=["pkgc", "pkga"])
        index.add("pkgc", "1.0", requires=["pkgb"])
        snapshots = []

        def _observe(resolver):
            assert resolver.in_flight.isdisjoint(resolver.resolution)
            snapshots.append((set(resolver.in_flight), dict(resolver.resolution)))

        resolver, _, resolution = _scripted(index, "pkga", observer=_observe)

        assert snapshots
        assert resolver.in_flight == frozenset()
        assert resolution.to_dict() == {"pkga": "1.0", "pkgb": "1.0", "pkgc": "1.0"}

    def test_state_transitions(self):
        index = FakeIndex()
        index.add("pkga", "1.0")
        states = []

        resolver, _, _ = _scripted(index, "pkga", observer=lambda r: states.append(r.state))

        assert set(states) == {ResolverState.DRAINING}
        assert resolver.state is ResolverState.DONE

    def test_resolver_runs_once(self):
        index = FakeIndex()
        index.add("pkga", "1.0")
        resolver, _, _ = _scripted(index, "pkga")

        with pytest.raises(ResolutionError):
            asyncio.run(resolver.run(_reqs("pkga")))

    def test_duplicate_roots_each_requested(self):
        index = FakeIndex()
        index.add("pkga", "1.0")
        index.add("pkga", "2.0")

        _, dispatcher, resolution = _scripted(index, "pkga>=2", "PKGA<2")

        assert requested_names(dispatcher)[:2] == ["pkga", "pkga"]
        assert resolution.to_dict() == {"pkga": "2.0"}

    @pytest.mark.parametrize("roots", [("pkga<2", "pkga>=99"), ("pkga>=99", "pkga<2")])
    def test_unsatisfiable_duplicate_root_keeps_name_in_flight(self, roots):
        index = FakeIndex()
        index.add("pkga", "1.0")

        resolver, dispatcher, resolution = _scripted(index, *roots)

        assert resolution.to_dict() == {"pkga": "1.0"}
        assert len(metadata_requests(dispatcher)) == 1
        assert resolver.in_flight == frozenset()

    def test_unsatisfiable_duplicate_root_with_real_dispatcher(self):
        index = FakeIndex()
        index.add("pkga", "1.0")

        assert _resolve(index, "pkga>=99", "pkga<2").to_dict() == {"pkga": "1.0"}
        assert _resolve(index, "pkga<2", "pkga>=99").to_dict() == {"pkga": "1.0"}

    def test_all_duplicate_roots_unsatisfiable_terminates(self):
        index = FakeIndex()
        index.add("pkga", "1.0")

        resolver, _, resolution = _scripted(index, "pkga>=5", "pkga>=99")

        assert resolution.to_dict() == {}
        assert resolver.in_flight == frozenset()

    def test_metadata_requested_for_selected_file(self):
        index = FakeIndex()
        index.add("pkga", "1.0")
        index.add("pkga", "2.0")

        _, dispatcher, _ = _scripted(index, "pkga<2")

        (request,) = metadata_requests(dispatcher)
        assert request.file.filename == "pkga-1.0-py3-none-any.whl"
        assert str(request.requirement) == "pkga<2"

    def test_dropped_dependency_removed_from_in_flight(self):
        index = FakeIndex()
        index.add("pkga", "1.0", requires=["pkgb"])
        index.add_file("pkgb", "pkgb-1.0.tar.gz")

        resolver, _, resolution = _scripted(index, "pkga")

        assert resolution.to_dict() == {"pkga": "1.0"}
        assert "pkgb" not in resolver.in_flight

    def test_unexpected_response_raises_dispatch_error(self):
        class _BrokenDispatcher:
            def submit(self, request):
                pass

            async def next_batch(self):
                return [object()]

        resolver = Resolver(_BrokenDispatcher(), environment=ENVIRONMENT, tags=TAGS)
        with pytest.raises(DispatchError):
            asyncio.run(resolver.run(_reqs("pkga")))

    def test_late_duplicate_metadata_does_not_overwrite(self):
        index = FakeIndex()
        older = index.add("pkga", "1.0")
        newer = index.add("pkga", "2.0")

        class _Replay:
            """Delivers two metadata responses for the same name in one batch."""

            def submit(self, request):
                pass

            async def next_batch(self):
                return [
                    MetadataReady(await index.fetch_metadata(older), Requirement("pkga")),
                    MetadataReady(await index.fetch_metadata(newer), Requirement("pkga")),
                ]

        resolver = Resolver(_Replay(), environment=ENVIRONMENT, tags=TAGS)
        resolution = asyncio.run(resolver.run(_reqs("pkga")))

        assert resolution.to_dict() == {"pkga": "1.0"}

    def test_listing_for_already_pinned_name_ignored(self):
        class _Recorder:
            def __init__(self):
                self.submitted = []

            def submit(self, request):
                self.submitted.append(request)

        dispatcher = _Recorder()
        resolver = Resolver(dispatcher, environment=ENVIRONMENT, tags=TAGS)
        resolver.seed(_reqs("pkga"))
        resolver.resolution.pin("pkga", Version("1.0"))
        listing = CandidateListing(name="pkga", files=[FakeIndex().add("pkga", "2.0")])
        resolver._handle(ListingReady(listing, Requirement("pkga")))

        assert [type(r) for r in dispatcher.submitted] == [FetchListing]
        assert resolver.resolution.to_dict() == {"pkga": "1.0"}
