"""
The on-disk layout of a download root and its precondition checks.
"""

import logging
import os
import stat
from pathlib import Path
from typing import Tuple

from depot_sync.crypto.keys import public_key_filename
from depot_sync.exceptions import PermissionFailedError
from depot_sync.models.ident import PackageIdent, PackageTarget
from depot_sync.utils.path import checked_filename, create_dir

log = logging.getLogger(__name__)


def _is_readonly(directory: Path) -> bool:
    # No write bit at all counts as read-only even for a superuser
    mode = directory.stat().st_mode
    return not mode & (stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH) or not os.access(
        directory, os.W_OK
    )


class DownloadLayout:
    """
    Maps packages and signing keys to deterministic paths under a download root.

        <root>/artifacts/<origin>-<name>-<version>-<release>-<target>.hart
        <root>/keys/<signer-name>-<revision>.pub
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def artifacts_dir(self) -> Path:
        return self.root / "artifacts"

    @property
    def keys_dir(self) -> Path:
        return self.root / "keys"

    def artifact_path(self, ident: PackageIdent, target: PackageTarget) -> Path:
        """Where the artifact for (ident, target) lives, whether or not it exists."""
        return self.artifacts_dir / checked_filename(ident.archive_name(target))

    def key_path(self, signer_name: str, revision: str) -> Path:
        return self.keys_dir / checked_filename(public_key_filename(signer_name, revision))

    def system_paths(self) -> Tuple[Path, Path, Path]:
        return (self.root, self.keys_dir, self.artifacts_dir)

    def prepare(self) -> None:
        """
        Creates the download tree if needed and checks that every part of it is
        a writable directory.

        Raises:
            PermissionFailedError: If a directory cannot be created, is not a
            directory, or is not writable.
        """
        for directory in self.system_paths():
            try:
                create_dir(directory)
            except OSError as e:
                raise PermissionFailedError(
                    f"Can't create directory {directory} needed for download: {e}"
                ) from e

        for directory in self.system_paths():
            if not directory.is_dir():
                raise PermissionFailedError(
                    f"{directory} isn't a directory, needed for download"
                )
            if _is_readonly(directory):
                raise PermissionFailedError(
                    f"{directory} isn't writeable, needed for download"
                )
        log.debug(f"Download directory {self.root} is ready.")
