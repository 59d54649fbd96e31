"""
Public signing keys: names with revisions and the ``SIG-PUB-1`` file format.
"""

import base64
import binascii
import re
from pathlib import Path
from typing import Tuple

from depot_sync.exceptions import InvalidIdentError, VerificationFailedError

PUBLIC_KEY_VERSION = "SIG-PUB-1"

_NAME_WITH_REV_RE = re.compile(r"^(?P<name>[A-Za-z0-9_][A-Za-z0-9_-]*)-(?P<rev>\d{14})$")


def parse_name_with_rev(name_with_rev: str) -> Tuple[str, str]:
    """
    Splits ``core-20160810182414`` into ``("core", "20160810182414")``.

    The revision is the trailing 14-digit timestamp; the name may itself
    contain dashes.
    """
    match = _NAME_WITH_REV_RE.match(name_with_rev.strip())
    if not match:
        raise InvalidIdentError(
            f"Cannot parse key name with revision: '{name_with_rev}'"
        )
    return match.group("name"), match.group("rev")


def encode_public_key(name_with_rev: str, key: bytes) -> bytes:
    """Renders raw Ed25519 public key bytes as a ``SIG-PUB-1`` file body."""
    return (
        f"{PUBLIC_KEY_VERSION}\n{name_with_rev}\n\n".encode("utf-8")
        + base64.b64encode(key)
    )


def load_public_key(path: Path) -> Tuple[str, bytes]:
    """
    Reads a ``SIG-PUB-1`` file and returns its name with revision and raw key.

    Raises:
        VerificationFailedError: If the file is missing or malformed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise VerificationFailedError(f"Cannot read public key {path}: {e}") from e

    lines = text.split("\n")
    if len(lines) < 4 or lines[0].strip() != PUBLIC_KEY_VERSION or lines[2].strip():
        raise VerificationFailedError(f"Malformed public key file {path}")
    try:
        key = base64.b64decode(lines[3].strip(), validate=True)
    except binascii.Error as e:
        raise VerificationFailedError(f"Malformed public key in {path}: {e}") from e
    return lines[1].strip(), key


def public_key_filename(name: str, revision: str) -> str:
    return f"{name}-{revision}.pub"
