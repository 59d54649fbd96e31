"""
Dataclass for tracking download session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class DownloadStats:
    """Tracks counters for a download session."""

    artifacts_expanded: int = 0
    artifacts_downloaded: int = 0
    artifacts_cached: int = 0
    artifacts_skipped: int = 0
    artifacts_failed: int = 0
    artifacts_verified: int = 0
    keys_fetched: int = 0
    total_size_downloaded: int = 0
    started_at: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
