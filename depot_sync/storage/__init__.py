"""
Storage Layer.

This package handles all data persistence: the configuration file and the
on-disk download tree of artifacts and signing keys.
"""

from .config_manager import ConfigManager
from .layout import DownloadLayout

__all__ = ["ConfigManager", "DownloadLayout"]
