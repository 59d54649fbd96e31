"""
Manages loading and saving of the INI configuration file, layered with
environment variables and command-line options.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from depot_sync.exceptions import ConfigurationError
from depot_sync.models.config import (
    DEFAULT_CHANNEL,
    DEFAULT_DEPOT_URL,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    DownloadConfig,
)
from depot_sync.utils.path import CACHE_ROOT_ENVVAR, get_cache_root

log = logging.getLogger(__name__)

# Environment variable -> config key
ENV_OVERRIDES = {
    "DEPOT_SYNC_URL": "depot_url",
    "DEPOT_SYNC_CHANNEL": "channel",
    "DEPOT_SYNC_TOKEN": "token",
    CACHE_ROOT_ENVVAR: "download_path",
}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(
        self,
        cli_options: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> DownloadConfig:
        """
        Builds the run configuration from the INI file, environment variables and
        CLI options, in increasing order of precedence.

        A missing config file is not an error; defaults apply.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path)
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        environ = os.environ if environ is None else environ
        settings = self._get_config_as_dict()
        settings.update(self._get_env_overrides(environ))

        if cli_options:
            settings.update({k: v for k, v in cli_options.items() if v is not None})

        if not settings.get("download_path"):
            settings["download_path"] = get_cache_root(environ)

        try:
            return DownloadConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: Dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser()
        config["DEFAULT"] = {}

        defaults = {
            "depot_url": DEFAULT_DEPOT_URL,
            "channel": DEFAULT_CHANNEL,
            "token": "",
            "target": "",
            "download_path": "",
            "verify": False,
            "retries": DEFAULT_RETRIES,
            "retry_delay_ms": DEFAULT_RETRY_DELAY_MS,
            "max_workers": 8,
        }
        for key in sorted(DownloadConfig.get_ini_keys()):
            value = settings.get(key, defaults.get(key))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> Dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file, dropping empty values."""
        section = self._parser["DEFAULT"]
        values: Dict[str, Any] = {}
        try:
            for key in ("depot_url", "channel", "token", "target", "download_path"):
                if raw := section.get(key, "").strip():
                    values[key] = raw
            if "verify" in section:
                values["verify"] = section.getboolean("verify")
            for key in ("retries", "retry_delay_ms", "max_workers"):
                if section.get(key, "").strip():
                    values[key] = section.getint(key)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value in configuration file {self.config_file_path}: {e}"
            ) from e
        return values

    @staticmethod
    def _get_env_overrides(environ) -> Dict[str, Any]:
        return {
            key: environ[var]
            for var, key in ENV_OVERRIDES.items()
            if environ.get(var, "").strip()
        }

    def get_display_dict(self) -> Dict[str, Any]:
        """The file's settings as shown to a user."""
        if self.config_file_path.is_file():
            self._parser.read(self.config_file_path)
        return self._get_config_as_dict()
