"""
Per-artifact results and the final report of a download run.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from depot_sync.models.ident import ExpansionSet, PackageIdent, PackageTarget
from depot_sync.models.stats import DownloadStats


class ArtifactOutcome(Enum):
    """What happened to one (ident, target) pair."""

    DOWNLOADED = "downloaded"
    CACHED = "cached"
    SKIPPED = "skipped"  # Depot does not serve this target
    FAILED = "failed"


@dataclass
class ArtifactResult:
    """The tagged outcome of fetching and checking a single artifact."""

    ident: PackageIdent
    target: PackageTarget
    outcome: ArtifactOutcome
    path: Optional[Path] = None
    attempts: int = 0
    signer: Optional[str] = None
    key_fetched: bool = False
    verified: bool = False
    error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def present(self) -> bool:
        return self.outcome in (ArtifactOutcome.DOWNLOADED, ArtifactOutcome.CACHED)


@dataclass
class DownloadReport:
    """Everything a finished run knows about what it did."""

    expanded: ExpansionSet
    results: List[ArtifactResult]
    stats: DownloadStats

    @property
    def count(self) -> int:
        """Number of artifacts from the download set present on disk."""
        return sum(1 for r in self.results if r.present)

    @property
    def failures(self) -> List[ArtifactResult]:
        return [r for r in self.results if r.outcome is ArtifactOutcome.FAILED]
