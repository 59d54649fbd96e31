"""Tests for the depot HTTP client against an in-process aiohttp server."""

import asyncio

import nacl.signing
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from depot_sync.api.client import DepotClient
from depot_sync.api.rate_limiter import AdaptiveRateLimiter, parse_retry_after
from depot_sync.crypto.artifact import build_artifact
from depot_sync.crypto.keys import encode_public_key
from depot_sync.exceptions import DepotApiError
from depot_sync.models.ident import PackageIdent, PackageTarget

TARGET = PackageTarget("x86_64", "linux")
SIGNER = "core-20160810182414"
SIGNING_KEY = nacl.signing.SigningKey(b"\x03" * 32)
ARTIFACT = build_artifact(b"redis payload" * 1000, SIGNER, SIGNING_KEY)
REDIS = {"origin": "core", "name": "redis", "version": "4.0.14", "release": "20190319155852"}
GLIBC = {"origin": "core", "name": "glibc", "version": "2.27", "release": "20190115002733"}


def make_app(requests):
    routes = web.RouteTableDef()

    def record(request):
        requests.append(
            {
                "path": request.path,
                "query": dict(request.query),
                "user_agent": request.headers.get("User-Agent"),
                "authorization": request.headers.get("Authorization"),
            }
        )

    @routes.get("/v1/depot/channels/core/stable/pkgs/redis/latest")
    async def latest(request):
        record(request)
        return web.json_response({"ident": REDIS, "target": "x86_64-linux", "tdeps": [GLIBC]})

    @routes.get("/v1/depot/channels/core/stable/pkgs/missing/latest")
    async def missing(request):
        record(request)
        return web.Response(status=404, text="Not Found")

    @routes.get("/v1/depot/channels/core/stable/pkgs/busy/latest")
    async def busy(request):
        record(request)
        return web.Response(status=429, text="Slow down", headers={"Retry-After": "7"})

    @routes.get("/v1/depot/pkgs/core/redis/4.0.14/20190319155852")
    async def exact(request):
        record(request)
        return web.json_response({"ident": REDIS, "tdeps": []})

    @routes.get("/v1/depot/pkgs/core/redis/4.0.14/20190319155852/download")
    async def download(request):
        record(request)
        if request.query.get("target") != "x86_64-linux":
            return web.Response(status=501, text="Not Implemented")
        return web.Response(body=ARTIFACT, content_type="application/octet-stream")

    @routes.get("/v1/depot/origins/core/keys/20160810182414")
    async def key(request):
        record(request)
        return web.Response(body=encode_public_key(SIGNER, bytes(SIGNING_KEY.verify_key)))

    app = web.Application()
    app.add_routes(routes)
    return app


def run_against_depot(scenario):
    """Starts a local depot and runs ``scenario(client)`` against it."""
    requests = []

    async def main():
        server = TestServer(make_app(requests))
        await server.start_server()
        try:
            async with DepotClient(
                f"http://{server.host}:{server.port}/", "depot-sync", "1.2.3"
            ) as client:
                return await scenario(client)
        finally:
            await server.close()

    return asyncio.run(main()), requests


def test_resolve_latest_in_channel():
    ident = PackageIdent.parse("core/redis")
    package, requests = run_against_depot(
        lambda c: c.resolve_latest(ident, TARGET, "stable", "secret")
    )

    assert str(package.ident) == "core/redis/4.0.14/20190319155852"
    assert [str(d) for d in package.tdeps] == ["core/glibc/2.27/20190115002733"]
    assert requests == [
        {
            "path": "/v1/depot/channels/core/stable/pkgs/redis/latest",
            "query": {"target": "x86_64-linux"},
            "user_agent": "depot-sync/1.2.3",
            "authorization": "Bearer secret",
        }
    ]


def test_resolve_exact_ignores_channel():
    ident = PackageIdent.parse("core/redis/4.0.14/20190319155852")
    package, requests = run_against_depot(
        lambda c: c.resolve_latest(ident, TARGET, "unstable")
    )

    assert package.ident == ident
    assert requests[0]["path"] == "/v1/depot/pkgs/core/redis/4.0.14/20190319155852"
    assert requests[0]["authorization"] is None


def test_resolve_not_found():
    ident = PackageIdent.parse("core/missing")
    with pytest.raises(DepotApiError) as exc_info:
        run_against_depot(lambda c: c.resolve_latest(ident, TARGET, "stable"))
    assert exc_info.value.status == 404


def test_fetch_artifact(tmp_path):
    ident = PackageIdent.parse("core/redis/4.0.14/20190319155852")
    progress = []

    path, _ = run_against_depot(
        lambda c: c.fetch_artifact(
            ident, TARGET, None, tmp_path, lambda done, total: progress.append((done, total))
        )
    )

    assert path == tmp_path / ident.archive_name(TARGET)
    assert path.read_bytes() == ARTIFACT
    assert list(tmp_path.iterdir()) == [path]
    assert progress[-1] == (len(ARTIFACT), len(ARTIFACT))


def test_fetch_artifact_unsupported_target_leaves_nothing(tmp_path):
    ident = PackageIdent.parse("core/redis/4.0.14/20190319155852")
    target = PackageTarget("aarch64", "darwin")

    with pytest.raises(DepotApiError) as exc_info:
        run_against_depot(lambda c: c.fetch_artifact(ident, target, None, tmp_path))

    assert exc_info.value.status == 501
    assert list(tmp_path.iterdir()) == []


def test_fetch_signer_key(tmp_path):
    path, requests = run_against_depot(
        lambda c: c.fetch_signer_key("core", "20160810182414", "secret", tmp_path)
    )

    assert path == tmp_path / "core-20160810182414.pub"
    assert path.read_bytes().startswith(b"SIG-PUB-1\ncore-20160810182414\n\n")
    assert requests[0]["authorization"] == "Bearer secret"


def test_429_halves_rate_and_pauses_for_retry_after():
    ident = PackageIdent.parse("core/busy")

    async def scenario(client):
        with pytest.raises(DepotApiError) as exc_info:
            await client.resolve_latest(ident, TARGET, "stable")
        return exc_info.value.status, client._rate_limiter.rate, client._rate_limiter.reserve()

    (status, rate, delay), _ = run_against_depot(scenario)

    assert status == 429
    assert rate < 8.0
    assert 6.0 < delay <= 7.0


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestAdaptiveRateLimiter:
    def test_backs_off_on_429(self):
        limiter = AdaptiveRateLimiter(initial_calls_per_second=8.0)
        asyncio.run(limiter.on_429())
        assert limiter.rate == 4.0
        for _ in range(5):
            asyncio.run(limiter.on_429())
        assert limiter.rate == 1.0

    def test_slots_are_spaced_by_rate(self):
        clock = FakeClock()
        limiter = AdaptiveRateLimiter(4.0, max_calls_per_second=4.0, clock=clock)

        delays = [limiter.reserve() for _ in range(3)]

        assert delays == [0.0, 0.25, 0.5]

    def test_retry_after_holds_every_slot(self):
        clock = FakeClock()
        limiter = AdaptiveRateLimiter(4.0, max_calls_per_second=4.0, clock=clock)
        limiter.reserve()

        asyncio.run(limiter.on_429(retry_after=5.0))

        assert limiter.reserve() == 5.0
        assert limiter.reserve() == 5.5
        clock.now += 10.0
        assert limiter.reserve() == 0.0

    def test_acquire_does_not_serialize_waiters(self):
        limiter = AdaptiveRateLimiter(20.0, max_calls_per_second=20.0)

        async def main():
            loop = asyncio.get_running_loop()
            started = loop.time()
            await asyncio.gather(*(limiter.acquire() for _ in range(5)))
            return loop.time() - started

        assert asyncio.run(main()) < 1.0


@pytest.mark.parametrize(
    "value, expected",
    [(None, None), ("", None), ("3", 3.0), ("-4", 0.0), ("9999", 120.0), ("soon", None)],
)
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected


def test_parse_retry_after_http_date():
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
