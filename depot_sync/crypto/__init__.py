"""
Artifact signing format and signature verification.
"""

from .artifact import ArtifactVerifier, build_artifact
from .keys import encode_public_key, parse_name_with_rev

__all__ = [
    "ArtifactVerifier",
    "build_artifact",
    "encode_public_key",
    "parse_name_with_rev",
]
