"""
The main orchestrator: prepares the download directory, expands the requested
packages and fetches every artifact together with its signing key.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from depot_sync.api.client import DepotClient
from depot_sync.cli.reporter import Reporter, Status
from depot_sync.crypto.artifact import ArtifactVerifier
from depot_sync.exceptions import BatchFailedError, NoInputIdentifiersError
from depot_sync.models.config import DownloadConfig
from depot_sync.models.ident import ExpansionSet, PackageIdent, PackageTarget
from depot_sync.models.report import ArtifactOutcome, ArtifactResult, DownloadReport
from depot_sync.models.stats import DownloadStats
from depot_sync.storage.layout import DownloadLayout
from depot_sync.utils.formatting import mask_token
from depot_sync.utils.retry import RetryPolicy
from depot_sync.utils.tasks import gather_fail_fast

from .expander import DependencyExpander
from .fetcher import ArtifactFetcher
from .keys import KeyFetcher

log = logging.getLogger(__name__)


class DownloadManager:
    """
    Runs one download: directory checks, expansion, then fetch and verify for
    every expanded artifact.

    Any fatal error ends the run. With ``fail_fast`` the first failing artifact
    cancels the rest; without it every artifact is tried and the failures are
    raised together as a ``BatchFailedError`` at the end.
    """

    def __init__(
        self,
        config: DownloadConfig,
        depot,
        reporter: Reporter,
        verifier: Optional[ArtifactVerifier] = None,
    ):
        self.config = config
        self.depot = depot
        self.reporter = reporter
        self.stats = DownloadStats()
        self.layout = DownloadLayout(config.download_path)
        self.expander = DependencyExpander(
            depot, reporter, config.depot_url, config.max_workers
        )
        self.fetcher = ArtifactFetcher(
            depot,
            self.layout,
            reporter,
            RetryPolicy(max_attempts=config.retries, delay=config.retry_delay),
            token=config.token,
        )
        self.key_fetcher = KeyFetcher(
            depot,
            self.layout,
            reporter,
            verifier=verifier,
            token=config.token,
            verify=config.verify,
        )

    async def execute(self) -> DownloadReport:
        config = self.config
        log.debug(
            f"Starting download with url: {config.depot_url}, channel: {config.channel}, "
            f"product: {config.product}, version: {config.product_version}, "
            f"target: {config.target}, download_path: {config.download_path}, "
            f"token: {mask_token(config.token)}, verify: {config.verify}, "
            f"ident_count: {len(config.idents)}"
        )

        if not config.idents:
            self.reporter.fatal(
                "No package identifiers provided. Specify identifiers on the "
                "command line, or via an input file"
            )
            raise NoInputIdentifiersError("No package identifiers found")

        self.reporter.begin(
            f"Resolving dependencies for {len(config.idents)} package idents"
        )
        self.reporter.begin(f"Using channel {config.channel} from {config.depot_url}")
        self.reporter.begin(f"Using target {config.target}")
        self.reporter.begin(f"Storing in download directory {config.download_path}")

        self.reporter.status(
            Status.VERIFYING, f'the download directory "{config.download_path}"'
        )
        await asyncio.to_thread(self.layout.prepare)

        expanded = await self.expander.expand(
            config.idents, config.target, config.channel, config.token
        )
        self.stats.artifacts_expanded = len(expanded)

        results = await self.download_artifacts(expanded)
        report = DownloadReport(expanded=expanded, results=results, stats=self.stats)
        log.debug(f"Expanded package count: {len(expanded)}")

        if report.failures:
            raise BatchFailedError(
                f"{len(report.failures)} of {len(expanded)} artifacts could not be "
                "downloaded",
                report,
            )
        return report

    async def download_artifacts(self, expanded: ExpansionSet) -> List[ArtifactResult]:
        """Fetches and checks every pair, returning results sorted by ident."""
        self.reporter.status(
            Status.DOWNLOADING,
            f"Downloading {len(expanded)} artifacts (and their signing keys)",
        )
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def process(ident: PackageIdent, target: PackageTarget) -> ArtifactResult:
            async with semaphore:
                try:
                    return await self.get_downloaded_archive(ident, target)
                except Exception as e:
                    log.debug(f"Error fetching archive {ident} for {target}: {e!r}")
                    self.reporter.status(
                        Status.MISSING, f"Error fetching archive {ident} for {target}"
                    )
                    self.stats.artifacts_failed += 1
                    if self.config.fail_fast:
                        raise
                    return ArtifactResult(ident, target, ArtifactOutcome.FAILED, error=e)

        coros = [process(ident, target) for ident, target in _ordered(expanded)]
        if self.config.fail_fast:
            return await gather_fail_fast(coros)
        return list(await asyncio.gather(*coros))

    async def get_downloaded_archive(
        self, ident: PackageIdent, target: PackageTarget
    ) -> ArtifactResult:
        """
        Ensures the artifact is in the download directory, that its signing
        key is in the keys directory, and verifies it if asked to.
        """
        fetched = await self.fetcher.fetch(ident, target)
        result = ArtifactResult(
            ident, target, fetched.outcome, path=fetched.path, attempts=fetched.attempts
        )
        if fetched.outcome is ArtifactOutcome.SKIPPED:
            self.stats.artifacts_skipped += 1
            return result

        check = await self.key_fetcher.ensure_key_and_verify(fetched.path, ident, target)
        result.signer = check.signer
        result.key_fetched = check.key_fetched
        result.verified = check.verified

        if fetched.outcome is ArtifactOutcome.DOWNLOADED:
            self.stats.artifacts_downloaded += 1
            self.stats.total_size_downloaded += fetched.size
        else:
            self.stats.artifacts_cached += 1
        self.stats.keys_fetched += int(check.key_fetched)
        self.stats.artifacts_verified += int(check.verified)
        return result


def _ordered(
    expanded: Iterable[Tuple[PackageIdent, PackageTarget]],
) -> List[Tuple[PackageIdent, PackageTarget]]:
    return sorted(expanded, key=lambda pair: (pair[0].sort_key(), str(pair[1])))


async def start(config: DownloadConfig, reporter: Reporter) -> DownloadReport:
    """
    Downloads the configured packages, their dependencies and signing keys
    from the depot.

    The depot client lives exactly as long as the run.
    """
    async with DepotClient(
        config.depot_url,
        config.product,
        config.product_version,
        max_workers=config.max_workers,
        timeout=config.request_timeout,
    ) as depot:
        manager = DownloadManager(config, depot, reporter)
        return await manager.execute()
