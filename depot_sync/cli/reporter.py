"""
Console reporting for a download run: status lines, warnings and per-file
progress bars rendered with Rich.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from depot_sync.api.client import ProgressCallback

log = logging.getLogger("depot_sync")


class Status(Enum):
    """Status labels, with the style they are printed in."""

    DETERMINING = ("Determining", "cyan")
    USING = ("Using", "green")
    FOUND = ("Found", "green")
    DOWNLOADING = ("Downloading", "cyan")
    VERIFYING = ("Verifying", "cyan")
    VERIFIED = ("Verified", "green")
    CACHED = ("Using cached", "blue")
    SKIPPING = ("Skipping", "yellow")
    MISSING = ("Missing", "red")

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def style(self) -> str:
        return self.value[1]


class Reporter:
    """
    Reports pipeline progress to the console.

    Every line printed is also kept in ``events`` as a ``(label, message)``
    pair so a caller can inspect what a run said.
    """

    def __init__(self, console: Optional[Console] = None, show_progress: bool = True):
        self.console = console or Console()
        self.show_progress = show_progress
        self.events: List[Tuple[str, str]] = []

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )
        self._live = False

    def _emit(self, label: str, message: str, style: str) -> None:
        self.events.append((label, message))
        self.console.print(f"[bold {style}]» {label}[/] {escape(message)}")

    def begin(self, message: str) -> None:
        self.events.append(("begin", message))
        self.console.print(f"[bold]»[/] {escape(message)}")

    def status(self, status: Status, message: str) -> None:
        self._emit(status.label, message, status.style)

    def warn(self, message: str) -> None:
        self._emit("Warning", message, "yellow")
        log.debug(f"warning: {message}")

    def fatal(self, message: str) -> None:
        self._emit("Fatal", message, "red")

    def labels(self) -> List[str]:
        return [label for label, _ in self.events]

    @contextmanager
    def track(self, description: str) -> Iterator[ProgressCallback]:
        """
        Shows a progress bar for one transfer and yields the callback that
        advances it.
        """
        task_id: TaskID = self.progress.add_task(
            escape(description), total=None, start=True
        )

        def advance(received: int, total: Optional[int]) -> None:
            self.progress.update(task_id, completed=received, total=total)

        try:
            yield advance
        finally:
            self.progress.remove_task(task_id)

    async def __aenter__(self) -> "Reporter":
        if self.show_progress and self.console.is_terminal:
            self.progress.start()
            self._live = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._live:
            self.progress.stop()
            self._live = False
