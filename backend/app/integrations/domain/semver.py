# backend/app/integrations/domain/semver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional


# Repository versions always carry the "v" prefix. The short forms "v1" and
# "v1.2" are accepted (as "v1.0.0" / "v1.2.0") but cannot carry a
# prerelease or build suffix.
SEMVER_PATTERN_RE = re.compile(
    r"v(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*)"
    r"(?:\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|[0-9A-Za-z-]*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r")?)?",
    re.ASCII,
)


@total_ordering
@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = f"v{self.major}.{self.minor}.{self.patch}"
        prerelease = f"-{'.'.join(self.prerelease)}" if self.prerelease else ""
        build = f"+{'.'.join(self.build)}" if self.build else ""
        return f"{base}{prerelease}{build}"

    def _prerelease_cmp_key(self) -> tuple:
        # Numeric identifiers have lower precedence than non-numeric.
        parts: list[tuple[int, int | str]] = []
        for ident in self.prerelease:
            if ident.isdigit():
                parts.append((0, int(ident)))
            else:
                parts.append((1, ident))
        return tuple(parts)

    def _cmp_key(self) -> tuple:
        # A release sorts after every prerelease of the same core version.
        # Build metadata never takes part in precedence.
        release_flag = 1 if not self.prerelease else 0
        return (self.major, self.minor, self.patch, release_flag, self._prerelease_cmp_key())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._cmp_key() == other._cmp_key()

    def __hash__(self) -> int:
        return hash(self._cmp_key())

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._cmp_key() < other._cmp_key()


def parse(version: str) -> Optional[SemVer]:
    """Parse a "v"-prefixed semantic version, or return None when invalid."""
    if not isinstance(version, str):
        return None
    m = SEMVER_PATTERN_RE.fullmatch(version)
    if m is None:
        return None
    return SemVer(
        major=int(m.group("major")),
        minor=int(m.group("minor") or 0),
        patch=int(m.group("patch") or 0),
        prerelease=tuple(m.group("prerelease").split(".")) if m.group("prerelease") else (),
        build=tuple(m.group("build").split(".")) if m.group("build") else (),
    )


def is_valid(version: str) -> bool:
    return parse(version) is not None


def compare(a: str, b: str) -> int:
    """
    Compare two version strings, returning -1, 0 or 1.

    An invalid version is considered less than any valid one, and two
    invalid versions compare equal.
    """
    va, vb = parse(a), parse(b)
    if va is None and vb is None:
        return 0
    if va is None:
        return -1
    if vb is None:
        return 1
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0
