"""
Fetches artifacts into the download directory, reusing cached files and
retrying failed downloads.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from depot_sync.cli.reporter import Reporter, Status
from depot_sync.exceptions import (
    DepotApiError,
    DownloadFailedError,
    UnsupportedTargetError,
)
from depot_sync.models.ident import PackageIdent, PackageTarget
from depot_sync.models.report import ArtifactOutcome
from depot_sync.storage.layout import DownloadLayout
from depot_sync.utils.retry import RetryExhaustedError, RetryPolicy

log = logging.getLogger(__name__)

UNSUPPORTED_TARGET_STATUS = 501


@dataclass
class FetchResult:
    outcome: ArtifactOutcome
    path: Optional[Path] = None
    attempts: int = 0
    size: int = 0


class ArtifactFetcher:
    """
    Makes sure the artifact for an (ident, target) pair is in the download
    directory.

    A file already at the artifact's path is trusted as-is. Otherwise the
    download is retried under ``retry_policy``; once every attempt has failed
    the pair is reported as a ``DownloadFailedError``.
    """

    def __init__(
        self,
        depot,
        layout: DownloadLayout,
        reporter: Reporter,
        retry_policy: RetryPolicy,
        token: Optional[str] = None,
    ):
        self.depot = depot
        self.layout = layout
        self.reporter = reporter
        self.retry_policy = RetryPolicy(
            max_attempts=retry_policy.max_attempts,
            delay=retry_policy.delay,
            give_up_on=retry_policy.give_up_on + (UnsupportedTargetError,),
        )
        self.token = token

    async def fetch(self, ident: PackageIdent, target: PackageTarget) -> FetchResult:
        path = self.layout.artifact_path(ident, target)
        if await asyncio.to_thread(path.is_file):
            log.debug(f"Found {ident} in download directory, skipping remote download")
            self.reporter.status(Status.CACHED, str(ident))
            return FetchResult(ArtifactOutcome.CACHED, path)

        attempts = 0

        async def attempt() -> Path:
            nonlocal attempts
            attempts += 1
            return await self._download(ident, target)

        try:
            await self.retry_policy.run(attempt)
        except UnsupportedTargetError:
            self.reporter.status(
                Status.SKIPPING,
                "Host platform or architecture not supported by the targeted "
                f"depot; skipping {ident}.",
            )
            return FetchResult(ArtifactOutcome.SKIPPED, None, attempts)
        except RetryExhaustedError as e:
            raise DownloadFailedError(
                ident, target, e.attempts, e.last_error
            ) from e.last_error

        size = (await asyncio.to_thread(path.stat)).st_size
        return FetchResult(ArtifactOutcome.DOWNLOADED, path, attempts, size)

    async def _download(self, ident: PackageIdent, target: PackageTarget) -> Path:
        self.reporter.status(Status.DOWNLOADING, str(ident))
        try:
            with self.reporter.track(str(ident)) as progress:
                return await self.depot.fetch_artifact(
                    ident, target, self.token, self.layout.artifacts_dir, progress
                )
        except DepotApiError as e:
            if e.status == UNSUPPORTED_TARGET_STATUS:
                raise UnsupportedTargetError(f"{ident} for {target}") from e
            raise
