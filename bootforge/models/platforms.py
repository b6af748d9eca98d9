"""Platform triples: the key component of every step, cache entry and manifest."""

from __future__ import annotations

import platform as _platform
import sys

from pydantic import BaseModel, ConfigDict

from bootforge.errors import InvalidConfigurationError

# Machine names reported by the interpreter -> triple architecture.
_ARCH_ALIASES: dict[str, str] = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "i686": "i686",
    "i386": "i686",
}


class Platform(BaseModel):
    """An ``arch-vendor-os[-abi]`` target triple.

    Immutable and hashable so it can key dictionaries, cache entries and
    manifest lookups. Ordering follows the triple string.
    """

    model_config = ConfigDict(frozen=True)

    arch: str
    vendor: str
    os: str
    abi: str = ""

    @classmethod
    def parse(cls, triple: str) -> Platform:
        """Parse a triple such as ``x86_64-unknown-linux-gnu``."""
        parts = triple.strip().split("-")
        if len(parts) not in (3, 4) or not all(parts):
            raise InvalidConfigurationError(
                f"Invalid platform triple {triple!r}: expected arch-vendor-os[-abi]"
            )
        return cls(
            arch=parts[0],
            vendor=parts[1],
            os=parts[2],
            abi=parts[3] if len(parts) == 4 else "",
        )

    @classmethod
    def current(cls) -> Platform:
        """Best-effort triple for the running interpreter."""
        machine = _platform.machine().lower() or "unknown"
        arch = _ARCH_ALIASES.get(machine, machine)
        if sys.platform.startswith("linux"):
            return cls(arch=arch, vendor="unknown", os="linux", abi="gnu")
        if sys.platform == "darwin":
            return cls(arch=arch, vendor="apple", os="darwin")
        if sys.platform in ("win32", "cygwin"):
            return cls(arch=arch, vendor="pc", os="windows", abi="msvc")
        return cls(arch=arch, vendor="unknown", os=sys.platform)

    @property
    def triple(self) -> str:
        parts = [self.arch, self.vendor, self.os]
        if self.abi:
            parts.append(self.abi)
        return "-".join(parts)

    def __str__(self) -> str:
        return self.triple

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Platform):
            return NotImplemented
        return self.triple < other.triple
