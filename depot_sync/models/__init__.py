"""
Data Models Layer.

This package contains the models that define the core data structures
used throughout the application, such as identifiers, configuration and
run results.
"""

from .config import DownloadConfig
from .ident import ExpansionSet, PackageIdent, PackageTarget, ResolvedPackage
from .report import ArtifactOutcome, ArtifactResult, DownloadReport
from .stats import DownloadStats

__all__ = [
    "ArtifactOutcome",
    "ArtifactResult",
    "DownloadConfig",
    "DownloadReport",
    "DownloadStats",
    "ExpansionSet",
    "PackageIdent",
    "PackageTarget",
    "ResolvedPackage",
]
