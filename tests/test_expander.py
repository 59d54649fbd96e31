"""Tests for dependency expansion."""

import asyncio

import aiohttp
import pytest

from conftest import TARGET, FakeDepot
from depot_sync.core.expander import DependencyExpander
from depot_sync.exceptions import ArtifactPathCollisionError, DepotApiError
from depot_sync.models.ident import PackageIdent, ResolvedPackage


def expand(depot, reporter, idents):
    expander = DependencyExpander(depot, reporter, "https://depot.test", max_workers=2)
    return asyncio.run(
        expander.expand([PackageIdent.parse(i) for i in idents], TARGET, "stable")
    )


def test_union_of_closures(depot, reporter):
    depot.add("core/glibc/2.27/1")
    depot.add("core/zlib/1.2/1", deps=["core/glibc/2.27/1"])
    depot.add("core/redis/4.0/1", deps=["core/glibc/2.27/1"])
    depot.add("core/curl/7.0/1", deps=["core/zlib/1.2/1", "core/glibc/2.27/1"])

    expanded = expand(depot, reporter, ["core/redis", "core/curl", "core/redis"])

    assert {str(i) for i, _ in expanded} == {
        "core/glibc/2.27/1",
        "core/zlib/1.2/1",
        "core/redis/4.0/1",
        "core/curl/7.0/1",
    }
    assert {t for _, t in expanded} == {TARGET}
    assert ("Found", "4 artifacts") in reporter.events


def test_reports_each_resolution(depot, reporter):
    depot.add("core/redis/4.0/1")
    expand(depot, reporter, ["core/redis"])

    assert reporter.events[:2] == [
        ("Determining", "latest version of core/redis"),
        ("Using", "core/redis/4.0/1"),
    ]


def test_archive_name_collision(depot, reporter):
    depot.add("a/b-c/1/1")
    depot.add("a-b/c/1/1")

    with pytest.raises(ArtifactPathCollisionError):
        expand(depot, reporter, ["a/b-c", "a-b/c"])


def test_depot_error_is_reraised(reporter):
    class BrokenDepot(FakeDepot):
        async def resolve_latest(self, ident, target, channel, token=None):
            raise DepotApiError(500, "boom")

    with pytest.raises(DepotApiError):
        expand(BrokenDepot(), reporter, ["core/redis"])
    assert reporter.events[-1] == (
        "Warning",
        "Error fetching ident core/redis for target x86_64-linux",
    )


@pytest.mark.parametrize(
    "error",
    [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError(), ValueError("bad json")],
)
def test_transport_error_is_reported_and_reraised(reporter, error):
    class UnreachableDepot(FakeDepot):
        async def resolve_latest(self, ident, target, channel, token=None):
            raise error

    with pytest.raises(type(error)):
        expand(UnreachableDepot(), reporter, ["core/redis"])
    assert reporter.events[-1] == (
        "Warning",
        "Error fetching ident core/redis for target x86_64-linux",
    )


def test_exact_ident_is_honored(reporter):
    class SloppyDepot(FakeDepot):
        async def resolve_latest(self, ident, target, channel, token=None):
            newest = PackageIdent.parse("core/redis/4.0/2")
            return ResolvedPackage(newest, target, [])

    expanded = expand(SloppyDepot(), reporter, ["core/redis/4.0/1"])

    assert [str(i) for i, _ in expanded] == ["core/redis/4.0/1"]
