"""
Pydantic model for the run configuration.
Provides robust validation for all settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from depot_sync.models.ident import PackageIdent, PackageTarget

DEFAULT_DEPOT_URL = "https://bldr.habitat.sh"
DEFAULT_CHANNEL = "stable"
DEFAULT_PRODUCT = "depot-sync"

DEFAULT_RETRIES = 5
DEFAULT_RETRY_DELAY_MS = 3000


class DownloadConfig(BaseModel):
    """
    A validated configuration for one download run.

    Frozen: nothing in the pipeline may alter it once the run has started.
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
    )

    # What to download
    idents: list[PackageIdent] = Field(default_factory=list)
    target: PackageTarget = Field(default_factory=PackageTarget.active)

    # Depot connection
    depot_url: str = DEFAULT_DEPOT_URL
    channel: str = DEFAULT_CHANNEL
    token: Optional[str] = Field(default=None, repr=False)
    product: str = DEFAULT_PRODUCT
    product_version: str = "0.0.0"
    request_timeout: float = 60.0

    # Local cache
    download_path: Path

    # Behaviour
    verify: bool = False
    retries: int = DEFAULT_RETRIES
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    max_workers: int = 8
    fail_fast: bool = True

    @field_validator("idents", mode="before")
    @classmethod
    def parse_idents(cls, v):
        """Accepts identifier strings as well as parsed identifiers."""
        return [PackageIdent.parse(i) if isinstance(i, str) else i for i in v or []]

    @field_validator("target", mode="before")
    @classmethod
    def parse_target(cls, v):
        if isinstance(v, str):
            return PackageTarget.parse(v)
        return v

    @field_validator("depot_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Depot URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError(f"Invalid channel name: '{v}'")
        return v

    @field_validator("token")
    @classmethod
    def empty_token_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("download_path", mode="before")
    @classmethod
    def expand_download_path(cls, v):
        return Path(v).expanduser()

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Retries must be at least 1.")
        return v

    @field_validator("retry_delay_ms")
    @classmethod
    def validate_retry_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Retry delay cannot be negative.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @property
    def retry_delay(self) -> float:
        """The delay between download attempts, in seconds."""
        return self.retry_delay_ms / 1000

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns the keys that may be set from the INI file."""
        return {
            "depot_url",
            "channel",
            "token",
            "target",
            "download_path",
            "verify",
            "retries",
            "retry_delay_ms",
            "max_workers",
        }
