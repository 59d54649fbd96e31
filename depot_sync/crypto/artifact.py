"""
Reading and verifying ``HART-1`` signed artifacts.

An artifact is a short text header followed by the raw payload:

    HART-1
    <signer-name>-<revision>
    BLAKE2b
    <base64 Ed25519 signed message>
    <empty line>
    <payload bytes>

The signed message is the lowercase hex BLAKE2b-256 digest of the payload.
"""

import base64
import binascii
import hashlib
import logging
from pathlib import Path
from typing import BinaryIO, Tuple

import nacl.exceptions
import nacl.signing

from depot_sync.crypto.keys import (
    load_public_key,
    parse_name_with_rev,
    public_key_filename,
)
from depot_sync.exceptions import ArtifactFormatError, VerificationFailedError

log = logging.getLogger(__name__)

FORMAT_VERSION = "HART-1"
HASH_TYPE = "BLAKE2b"
HEADER_LINES = 5
# Header lines are short; anything longer is not a valid artifact
MAX_HEADER_LINE = 4096
CHUNK_SIZE = 1048576


def payload_digest(stream: BinaryIO) -> str:
    """Hex BLAKE2b-256 digest of everything left in the stream."""
    hasher = hashlib.blake2b(digest_size=32)
    for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def build_artifact(
    payload: bytes, name_with_rev: str, signing_key: nacl.signing.SigningKey
) -> bytes:
    """Signs a payload and returns the complete artifact bytes."""
    parse_name_with_rev(name_with_rev)
    digest = hashlib.blake2b(payload, digest_size=32).hexdigest()
    signed = signing_key.sign(digest.encode("ascii"))
    header = "\n".join(
        [FORMAT_VERSION, name_with_rev, HASH_TYPE, base64.b64encode(signed).decode(), ""]
    )
    return header.encode("utf-8") + b"\n" + payload


class ArtifactVerifier:
    """Inspects artifact headers and checks signatures against a key directory."""

    def _read_header(self, stream: BinaryIO, path: Path) -> Tuple[str, str, bytes]:
        lines = []
        for _ in range(HEADER_LINES):
            raw = stream.readline(MAX_HEADER_LINE)
            if not raw.endswith(b"\n"):
                raise ArtifactFormatError(f"Truncated or corrupt header in {path}")
            try:
                lines.append(raw[:-1].decode("utf-8"))
            except UnicodeDecodeError as e:
                raise ArtifactFormatError(f"Corrupt header in {path}") from e

        version, signer, hash_type, signature, blank = lines
        if version != FORMAT_VERSION:
            raise ArtifactFormatError(
                f"Unsupported artifact format '{version}' in {path}"
            )
        if hash_type != HASH_TYPE:
            raise ArtifactFormatError(f"Unsupported hash type '{hash_type}' in {path}")
        if blank:
            raise ArtifactFormatError(f"Missing header terminator in {path}")
        try:
            signed = base64.b64decode(signature, validate=True)
        except binascii.Error as e:
            raise ArtifactFormatError(f"Malformed signature in {path}") from e
        return signer, hash_type, signed

    def read_signer(self, path: Path) -> Tuple[str, str]:
        """
        Returns the (name, revision) of the key that signed an artifact.

        Only the header is read, never the payload.
        """
        try:
            with open(path, "rb") as f:
                signer, _, _ = self._read_header(f, path)
        except OSError as e:
            raise ArtifactFormatError(f"Cannot read artifact {path}: {e}") from e
        try:
            return parse_name_with_rev(signer)
        except ValueError as e:
            raise ArtifactFormatError(f"Invalid signer in {path}: {e}") from e

    def verify(self, path: Path, keys_dir: Path) -> str:
        """
        Verifies an artifact's signature with the signer's public key from
        ``keys_dir``.

        Returns:
            The signer's name with revision.

        Raises:
            VerificationFailedError: On a missing key, bad signature or a payload
            that does not match the signed digest.
        """
        try:
            with open(path, "rb") as f:
                signer, _, signed = self._read_header(f, path)
                try:
                    name, rev = parse_name_with_rev(signer)
                except ValueError as e:
                    raise ArtifactFormatError(f"Invalid signer in {path}: {e}") from e
                key_path = Path(keys_dir) / public_key_filename(name, rev)
                if not key_path.is_file():
                    raise VerificationFailedError(
                        f"Public key {key_path.name} for {path.name} not found in {keys_dir}"
                    )
                key_name, key = load_public_key(key_path)
                if key_name != signer:
                    raise VerificationFailedError(
                        f"Key file {key_path.name} holds '{key_name}', expected '{signer}'"
                    )
                actual = payload_digest(f)
        except OSError as e:
            raise ArtifactFormatError(f"Cannot read artifact {path}: {e}") from e

        try:
            expected = nacl.signing.VerifyKey(key).verify(signed).decode("ascii")
        except (nacl.exceptions.BadSignatureError, ValueError, TypeError) as e:
            raise VerificationFailedError(
                f"Signature verification failed for {path.name}: {e}"
            ) from e

        if expected != actual:
            raise VerificationFailedError(
                f"Checksum mismatch for {path.name}: signed {expected}, got {actual}"
            )
        log.debug(f"Verified {path.name} signed by {signer}")
        return signer
