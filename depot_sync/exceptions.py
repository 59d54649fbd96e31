"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from depot_sync.models.report import DownloadReport


class DepotSyncError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(DepotSyncError):
    """Raised for issues related to configuration loading or validation."""


class NoInputIdentifiersError(DepotSyncError):
    """Raised when a run is started without any package identifiers."""


class InvalidIdentError(DepotSyncError, ValueError):
    """Raised when a package identifier, target or signer name cannot be parsed."""


class PermissionFailedError(DepotSyncError):
    """Raised when the download directory tree cannot be created or written to."""


class DepotApiError(DepotSyncError):
    """Raised when the depot answers with a non-success status."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"[{status}] {message}" if message else f"[{status}]")


class PackageNotFoundError(DepotSyncError):
    """Raised when the depot has no release matching a requested identifier."""


class UnsupportedTargetError(DepotSyncError):
    """
    Raised when the depot does not serve artifacts for the requested target.

    Never fatal: the fetcher turns it into a skipped artifact.
    """


class DownloadFailedError(DepotSyncError):
    """Raised when an artifact could not be downloaded after every retry."""

    def __init__(self, ident, target, attempts: int, last_error: BaseException):
        self.ident = ident
        self.target = target
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"We tried {attempts} times but could not download {ident} for "
            f"{target}. Last error was: {last_error}"
        )


class ArtifactFormatError(DepotSyncError):
    """Raised when an artifact header is malformed or truncated."""


class VerificationFailedError(DepotSyncError):
    """Raised when an artifact fails signature verification."""


class ArtifactPathCollisionError(DepotSyncError):
    """Raised when two distinct packages would be cached under the same file name."""


class BatchFailedError(DepotSyncError):
    """
    Raised at the end of a keep-going run in which at least one artifact failed.
    """

    def __init__(self, message: str, report: Optional["DownloadReport"] = None):
        super().__init__(message)
        self.report = report
