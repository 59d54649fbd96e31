"""Shared test fixtures for depot-sync."""

import asyncio
import io
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import nacl.signing
import pytest
from rich.console import Console

from depot_sync.cli.reporter import Reporter
from depot_sync.crypto.artifact import build_artifact
from depot_sync.crypto.keys import encode_public_key, parse_name_with_rev, public_key_filename
from depot_sync.exceptions import DepotApiError
from depot_sync.models.config import DownloadConfig
from depot_sync.models.ident import PackageIdent, PackageTarget, ResolvedPackage

SIGNER = "core-20160810182414"
TARGET = PackageTarget("x86_64", "linux")

ALWAYS = -1


class FakeDepot:
    """
    An in-memory depot with the same async interface as ``DepotClient``.

    Every call is recorded so tests can assert on what the pipeline asked for.
    """

    def __init__(self, signer: str = SIGNER):
        self.signer = signer
        self.signing_key = nacl.signing.SigningKey(b"\x07" * 32)
        self.packages: Dict[PackageIdent, List[PackageIdent]] = {}
        self.signers: Dict[PackageIdent, Tuple[str, nacl.signing.SigningKey]] = {}
        self.latest: Dict[str, PackageIdent] = {}
        self.unsupported: set = set()
        self.failures: Dict[PackageIdent, int] = {}

        self.resolve_calls: List[str] = []
        self.artifact_calls: List[str] = []
        self.key_calls: List[str] = []

    def add(
        self,
        raw: str,
        deps: Sequence[str] = (),
        signer: Optional[str] = None,
        signing_key: Optional[nacl.signing.SigningKey] = None,
    ) -> PackageIdent:
        """Publishes a fully-qualified package as the latest of its name and version."""
        ident = PackageIdent.parse(raw)
        self.packages[ident] = [PackageIdent.parse(d) for d in deps]
        self.signers[ident] = (signer or self.signer, signing_key or self.signing_key)
        self.latest[f"{ident.origin}/{ident.name}"] = ident
        self.latest[f"{ident.origin}/{ident.name}/{ident.version}"] = ident
        return ident

    def fail(self, raw: str, times: int = ALWAYS) -> None:
        self.failures[PackageIdent.parse(raw)] = times

    def artifact_bytes(self, ident: PackageIdent, payload: Optional[bytes] = None) -> bytes:
        signer, key = self.signers[ident]
        return build_artifact(payload or f"payload of {ident}".encode(), signer, key)

    async def resolve_latest(self, ident, target, channel, token=None) -> ResolvedPackage:
        self.resolve_calls.append(str(ident))
        await asyncio.sleep(0)
        found = ident if ident.fully_qualified else self.latest.get(str(ident))
        if found not in self.packages:
            raise DepotApiError(404, "Not Found")
        return ResolvedPackage(found, target, list(self.packages[found]))

    async def fetch_artifact(self, ident, target, token, dest_dir, progress=None) -> Path:
        self.artifact_calls.append(str(ident))
        await asyncio.sleep(0)
        if ident in self.unsupported:
            raise DepotApiError(501, "Not Implemented")
        remaining = self.failures.get(ident, 0)
        if remaining:
            if remaining > 0:
                self.failures[ident] = remaining - 1
            raise DepotApiError(503, "Service Unavailable")
        data = self.artifact_bytes(ident)
        destination = Path(dest_dir) / ident.archive_name(target)
        destination.write_bytes(data)
        if progress:
            progress(len(data), len(data))
        return destination

    async def fetch_signer_key(self, name, rev, token, dest_dir, progress=None) -> Path:
        self.key_calls.append(f"{name}-{rev}")
        await asyncio.sleep(0)
        key = next(
            k for s, k in self.signers.values() if parse_name_with_rev(s) == (name, rev)
        )
        destination = Path(dest_dir) / public_key_filename(name, rev)
        destination.write_bytes(encode_public_key(f"{name}-{rev}", bytes(key.verify_key)))
        return destination


def make_config(download_path: Path, idents=(), **overrides) -> DownloadConfig:
    settings = {
        "idents": list(idents),
        "target": TARGET,
        "depot_url": "https://depot.test",
        "download_path": download_path,
        "retry_delay_ms": 0,
    }
    settings.update(overrides)
    return DownloadConfig(**settings)


@pytest.fixture
def depot() -> FakeDepot:
    """A fake depot publishing nothing yet."""
    return FakeDepot()


@pytest.fixture
def reporter() -> Reporter:
    """A reporter writing to an in-memory console."""
    return Reporter(console=Console(file=io.StringIO(), width=200), show_progress=False)


@pytest.fixture
def download_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"
