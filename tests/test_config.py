"""Tests for configuration loading, layering and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from depot_sync.exceptions import ConfigurationError
from depot_sync.models.config import DEFAULT_CHANNEL, DEFAULT_DEPOT_URL, DownloadConfig
from depot_sync.models.ident import PackageTarget
from depot_sync.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return tmp_path / "depot-sync" / "config.ini"


@pytest.fixture(autouse=True)
def cache_root(tmp_path: Path, monkeypatch) -> Path:
    root = tmp_path / "default-cache"
    monkeypatch.setenv("DEPOT_SYNC_CACHE_ROOT", str(root))
    for var in ("DEPOT_SYNC_URL", "DEPOT_SYNC_CHANNEL", "DEPOT_SYNC_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    return root


def test_defaults_without_file(config_file, cache_root):
    config = ConfigManager(config_file).load_config()

    assert config.depot_url == DEFAULT_DEPOT_URL
    assert config.channel == DEFAULT_CHANNEL
    assert config.download_path == cache_root
    assert config.retries == 5
    assert config.retry_delay == 3.0
    assert config.verify is False
    assert config.fail_fast is True
    assert config.token is None


def test_layers_in_order(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text(
        "[DEFAULT]\n"
        "depot_url = https://file.example/\n"
        "channel = unstable\n"
        "verify = true\n"
        "retries = 2\n"
        "target = aarch64-linux\n"
    )
    environ = {"DEPOT_SYNC_CHANNEL": "env-channel", "DEPOT_SYNC_TOKEN": "tok"}

    config = ConfigManager(config_file).load_config(
        {"channel": "cli-channel", "retries": None, "idents": ["core/redis"]}, environ
    )

    assert config.depot_url == "https://file.example"
    assert config.channel == "cli-channel"
    assert config.token == "tok"
    assert config.verify is True
    assert config.retries == 2
    assert config.target == PackageTarget("aarch64", "linux")
    assert [str(i) for i in config.idents] == ["core/redis"]


def test_save_then_load(config_file, tmp_path):
    manager = ConfigManager(config_file)
    manager.save_new_config({"channel": "beta", "download_path": tmp_path / "dl"})

    config = ConfigManager(config_file).load_config(environ={})

    assert config.channel == "beta"
    assert config.download_path == tmp_path / "dl"
    assert ConfigManager(config_file).get_display_dict()["channel"] == "beta"


def test_bad_integer_in_file(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[DEFAULT]\nretries = many\n")
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_config(environ={})


@pytest.mark.parametrize(
    "override",
    [
        {"depot_url": "ftp://depot"},
        {"channel": "a/b"},
        {"retries": 0},
        {"max_workers": 0},
        {"idents": ["not-an-ident"]},
        {"target": "x86_64"},
    ],
)
def test_invalid_values(config_file, override):
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_config(override, environ={})


def test_config_is_frozen(tmp_path):
    config = DownloadConfig(download_path=tmp_path)
    with pytest.raises(ValidationError):
        config.channel = "other"


def test_cache_root_variable_beats_file(config_file, tmp_path):
    config_file.parent.mkdir(parents=True)
    config_file.write_text(f"[DEFAULT]\ndownload_path = {tmp_path / 'from-ini'}\n")
    environ = {"DEPOT_SYNC_CACHE_ROOT": str(tmp_path / "from-env")}

    manager = ConfigManager(config_file)

    assert manager.load_config(environ=environ).download_path == tmp_path / "from-env"
    assert ConfigManager(config_file).load_config(environ={}).download_path == (
        tmp_path / "from-ini"
    )
    assert ConfigManager(config_file).load_config(
        {"download_path": tmp_path / "from-cli"}, environ
    ).download_path == tmp_path / "from-cli"
