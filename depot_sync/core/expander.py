"""
Expands requested package identifiers into the full set of artifacts to fetch.
"""

import asyncio
import dataclasses
import logging
from typing import Dict, Iterable, Optional, Set, Tuple

import aiohttp

from depot_sync.cli.reporter import Reporter, Status
from depot_sync.exceptions import (
    ArtifactPathCollisionError,
    DepotApiError,
    PackageNotFoundError,
)
from depot_sync.models.ident import (
    ExpansionSet,
    PackageIdent,
    PackageTarget,
    ResolvedPackage,
)
from depot_sync.utils.tasks import gather_fail_fast

log = logging.getLogger(__name__)


class DependencyExpander:
    """
    Resolves each requested identifier against the depot and collects the
    resolved packages together with their transitive dependencies.

    The depot is always asked, even for identifiers whose artifacts are
    already cached.
    """

    def __init__(
        self,
        depot,
        reporter: Reporter,
        depot_url: str,
        max_workers: int = 8,
    ):
        self.depot = depot
        self.reporter = reporter
        self.depot_url = depot_url
        self.max_workers = max_workers

    async def expand(
        self,
        idents: Iterable[PackageIdent],
        target: PackageTarget,
        channel: str,
        token: Optional[str] = None,
    ) -> ExpansionSet:
        """
        Returns the deduplicated set of (ident, target) pairs for ``idents``
        and all of their transitive dependencies.

        Raises:
            PackageNotFoundError: If any identifier has no match in the channel.
            DepotApiError: On any other depot failure.
        """
        semaphore = asyncio.Semaphore(self.max_workers)

        async def resolve(ident: PackageIdent) -> ResolvedPackage:
            async with semaphore:
                return await self.determine_latest(ident, target, channel, token)

        packages = await gather_fail_fast(resolve(ident) for ident in idents)

        expanded: Set[Tuple[PackageIdent, PackageTarget]] = set()
        for package in packages:
            expanded.add((package.ident, target))
            expanded.update((dep, target) for dep in package.tdeps)

        self._check_unique_paths(expanded)
        self.reporter.status(Status.FOUND, f"{len(expanded)} artifacts")
        return frozenset(expanded)

    async def determine_latest(
        self,
        ident: PackageIdent,
        target: PackageTarget,
        channel: str,
        token: Optional[str],
    ) -> ResolvedPackage:
        self.reporter.status(Status.DETERMINING, f"latest version of {ident}")
        try:
            package = await self.depot.resolve_latest(ident, target, channel, token)
        except DepotApiError as e:
            if e.status == 404:
                self.reporter.warn(
                    f"No packages matching ident {ident} for {target} exist in the "
                    f"'{channel}' channel. Check the package ident, target, channel "
                    f"and depot url ({self.depot_url}) for correctness"
                )
                raise PackageNotFoundError(
                    f"{ident} for {target} in channel {channel}"
                ) from e
            log.debug(f"Error fetching ident {ident} for target {target}: {e!r}")
            self.reporter.warn(f"Error fetching ident {ident} for target {target}")
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.debug(f"Error fetching ident {ident} for target {target}: {e!r}")
            self.reporter.warn(f"Error fetching ident {ident} for target {target}")
            raise

        if ident.fully_qualified and package.ident != ident:
            log.debug(f"Depot answered {package.ident} for exact ident {ident}")
            package = dataclasses.replace(package, ident=ident)

        self.reporter.status(Status.USING, str(package.ident))
        return package

    @staticmethod
    def _check_unique_paths(expanded: Set[Tuple[PackageIdent, PackageTarget]]) -> None:
        seen: Dict[str, PackageIdent] = {}
        for ident, target in expanded:
            name = ident.archive_name(target)
            if name in seen and seen[name] != ident:
                raise ArtifactPathCollisionError(
                    f"{seen[name]} and {ident} would both be cached as {name}"
                )
            seen[name] = ident
