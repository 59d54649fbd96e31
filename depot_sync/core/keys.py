"""
Fetches the signing keys an artifact needs and verifies its signature.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from depot_sync.cli.reporter import Reporter, Status
from depot_sync.crypto.artifact import ArtifactVerifier
from depot_sync.models.ident import PackageIdent, PackageTarget
from depot_sync.storage.layout import DownloadLayout

log = logging.getLogger(__name__)


@dataclass
class KeyCheck:
    signer: str
    key_fetched: bool = False
    verified: bool = False


class KeyFetcher:
    """
    Reads the signer from an artifact header, fetches the signer's public key
    when it is not in the keys directory, and verifies the artifact when
    ``verify`` is set.

    The key is fetched whenever it is missing, whether or not verification
    will run.
    """

    def __init__(
        self,
        depot,
        layout: DownloadLayout,
        reporter: Reporter,
        verifier: Optional[ArtifactVerifier] = None,
        token: Optional[str] = None,
        verify: bool = False,
    ):
        self.depot = depot
        self.layout = layout
        self.reporter = reporter
        self.verifier = verifier or ArtifactVerifier()
        self.token = token
        self.verify = verify
        # A key shared by concurrent artifacts is fetched once
        self._key_locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, signer: str) -> asyncio.Lock:
        if signer not in self._key_locks:
            self._key_locks[signer] = asyncio.Lock()
        return self._key_locks[signer]

    async def ensure_key_and_verify(
        self, artifact_path: Path, ident: PackageIdent, target: PackageTarget
    ) -> KeyCheck:
        name, rev = await asyncio.to_thread(self.verifier.read_signer, artifact_path)
        check = KeyCheck(signer=f"{name}-{rev}")

        async with self._lock_for(check.signer):
            key_path = self.layout.key_path(name, rev)
            if not await asyncio.to_thread(key_path.is_file):
                self.reporter.status(
                    Status.DOWNLOADING, f"public key for signer {check.signer}"
                )
                with self.reporter.track(f"{check.signer}.pub") as progress:
                    await self.depot.fetch_signer_key(
                        name, rev, self.token, self.layout.keys_dir, progress
                    )
                check.key_fetched = True

        if self.verify:
            self.reporter.status(Status.VERIFYING, str(ident))
            await asyncio.to_thread(
                self.verifier.verify, artifact_path, self.layout.keys_dir
            )
            log.debug(f"Verified {ident} for {target} signed by {check.signer}")
            check.verified = True
        return check
