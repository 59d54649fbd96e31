"""
Package identifiers, targets and resolved depot packages.
"""

import platform
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from depot_sync.exceptions import InvalidIdentError

_COMPONENT_RE = re.compile(r"^[A-Za-z0-9_.+~-]+$")

ARCHIVE_EXTENSION = "hart"

# Maps values reported by platform.machine() to depot architecture names
_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}

_PLATFORM_ALIASES = {
    "linux": "linux",
    "win32": "windows",
    "cygwin": "windows",
    "darwin": "darwin",
}


def _check_component(kind: str, value: str, raw: str) -> str:
    if not _COMPONENT_RE.match(value):
        raise InvalidIdentError(f"Invalid {kind} '{value}' in package ident '{raw}'")
    return value


@dataclass(frozen=True)
class PackageIdent:
    """An origin/name[/version[/release]] package identifier."""

    origin: str
    name: str
    version: Optional[str] = None
    release: Optional[str] = None

    def __post_init__(self):
        if self.release is not None and self.version is None:
            raise InvalidIdentError(
                f"Package ident {self.origin}/{self.name} has a release but no version"
            )

    @classmethod
    def parse(cls, raw: str) -> "PackageIdent":
        """
        Parses an identifier such as ``core/redis`` or ``core/redis/3.0.1/20160101``.
        """
        text = raw.strip()
        parts = text.split("/")
        if len(parts) < 2 or len(parts) > 4 or not all(parts):
            raise InvalidIdentError(
                f"Invalid package ident '{raw}'. Expected origin/name[/version[/release]]"
            )
        checked = [
            _check_component(kind, value, raw)
            for kind, value in zip(("origin", "name", "version", "release"), parts)
        ]
        return cls(*checked)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PackageIdent":
        """Builds an identifier from the depot's JSON ident object."""
        try:
            return cls(
                origin=data["origin"],
                name=data["name"],
                version=data.get("version") or None,
                release=data.get("release") or None,
            )
        except (KeyError, TypeError) as e:
            raise InvalidIdentError(f"Malformed ident in depot response: {data!r}") from e

    def to_json(self) -> Dict[str, str]:
        payload = {"origin": self.origin, "name": self.name}
        if self.version:
            payload["version"] = self.version
        if self.release:
            payload["release"] = self.release
        return payload

    @property
    def fully_qualified(self) -> bool:
        return self.version is not None and self.release is not None

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.origin, self.name, self.version or "", self.release or "")

    def archive_name(self, target: "PackageTarget") -> str:
        """
        Returns the on-disk file name of this package's artifact for a target.

        Only fully-qualified identifiers address a single artifact.
        """
        if not self.fully_qualified:
            raise InvalidIdentError(
                f"Cannot build an archive name for partial ident {self}"
            )
        return (
            f"{self.origin}-{self.name}-{self.version}-{self.release}-"
            f"{target}.{ARCHIVE_EXTENSION}"
        )

    def __str__(self) -> str:
        return "/".join(
            p for p in (self.origin, self.name, self.version, self.release) if p
        )


@dataclass(frozen=True)
class PackageTarget:
    """An architecture/platform pair, rendered as ``x86_64-linux``."""

    architecture: str
    platform: str

    @classmethod
    def parse(cls, raw: str) -> "PackageTarget":
        arch, sep, plat = raw.strip().rpartition("-")
        if not sep or not arch or not plat:
            raise InvalidIdentError(
                f"Invalid package target '{raw}'. Expected <arch>-<platform>"
            )
        _check_component("architecture", arch, raw)
        _check_component("platform", plat, raw)
        return cls(arch, plat)

    @classmethod
    def active(cls) -> "PackageTarget":
        """Returns the target matching the running host."""
        machine = platform.machine().lower()
        arch = _ARCH_ALIASES.get(machine, machine or "x86_64")
        plat = next(
            (v for k, v in _PLATFORM_ALIASES.items() if sys.platform.startswith(k)),
            sys.platform,
        )
        return cls(arch, plat)

    def __str__(self) -> str:
        return f"{self.architecture}-{self.platform}"


@dataclass(frozen=True)
class ResolvedPackage:
    """A depot answer: the fully-qualified ident and its transitive dependencies."""

    ident: PackageIdent
    target: PackageTarget
    tdeps: List[PackageIdent] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any], target: PackageTarget) -> "ResolvedPackage":
        ident = PackageIdent.from_json(data.get("ident") or {})
        if not ident.fully_qualified:
            raise InvalidIdentError(f"Depot returned a partial ident: {ident}")
        raw_target = data.get("target")
        resolved_target = PackageTarget.parse(raw_target) if raw_target else target
        tdeps = [PackageIdent.from_json(dep) for dep in data.get("tdeps") or []]
        if partial := [str(dep) for dep in tdeps if not dep.fully_qualified]:
            raise InvalidIdentError(
                f"Depot returned partial dependencies for {ident}: {', '.join(partial)}"
            )
        return cls(ident=ident, target=resolved_target, tdeps=tdeps)


ExpansionSet = FrozenSet[Tuple[PackageIdent, PackageTarget]]
