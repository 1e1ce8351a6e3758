"""Semantic version grammar, precedence and increment rules.

Implements https://semver.org/spec/v2.0.0.html with one relaxation: a single
leading ``v`` is accepted so git tags like ``v1.4.7`` parse directly.

    >>> SemVer.parse("1.4.7").bump("minor")
    SemVer(major=1, minor=5, patch=0, prerelease=(), build=())
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from changelog_agent.errors import InvalidVersionError

BumpKind = Literal["major", "minor", "patch"]

_NUM = r"0|[1-9]\d*"
_PRE_IDENT = r"0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*"
_BUILD_IDENT = r"[0-9a-zA-Z-]+"

_SEMVER_RE = re.compile(
    rf"v?({_NUM})\.({_NUM})\.({_NUM})"
    rf"(?:-((?:{_PRE_IDENT})(?:\.(?:{_PRE_IDENT}))*))?"
    rf"(?:\+({_BUILD_IDENT}(?:\.{_BUILD_IDENT})*))?",
    re.ASCII,
)


def _cmp(a: object, b: object) -> int:
    return (a > b) - (a < b)  # type: ignore[operator]


def _compare_identifiers(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        return _cmp(int(a), int(b))
    if a_num:
        return -1
    if b_num:
        return 1
    return _cmp(a, b)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> SemVer:
        """Parse a version string.

        Raises:
            InvalidVersionError: If ``text`` does not follow the grammar.
        """
        m = _SEMVER_RE.fullmatch(text) if isinstance(text, str) else None
        if m is None:
            raise InvalidVersionError(text)
        pre, build = m.group(4), m.group(5)
        return cls(
            int(m.group(1)),
            int(m.group(2)),
            int(m.group(3)),
            tuple(pre.split(".")) if pre else (),
            tuple(build.split(".")) if build else (),
        )

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def bump(self, kind: BumpKind) -> SemVer:
        """Return the next release on the ``kind`` line.

        A prerelease already sitting on that line is promoted rather than
        skipped over: ``2.0.0-rc.1`` bumped as major is ``2.0.0``.
        """
        is_pre = bool(self.prerelease)
        match kind:
            case "major":
                if is_pre and self.minor == 0 and self.patch == 0:
                    return SemVer(self.major, 0, 0)
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                if is_pre and self.patch == 0:
                    return SemVer(self.major, self.minor, 0)
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                if is_pre:
                    return SemVer(self.major, self.minor, self.patch)
                return SemVer(self.major, self.minor, self.patch + 1)
            case _:
                raise ValueError(f"unexpected bump kind: {kind}")

    def compare(self, other: SemVer) -> int:
        """Return -1, 0 or 1 by semver precedence (build metadata ignored)."""
        core = _cmp(
            (self.major, self.minor, self.patch),
            (other.major, other.minor, other.patch),
        )
        if core:
            return core
        if not self.prerelease or not other.prerelease:
            # A release ranks above any of its prereleases.
            return _cmp(not self.prerelease, not other.prerelease)
        for a, b in zip(self.prerelease, other.prerelease):
            result = _compare_identifiers(a, b)
            if result:
                return result
        return _cmp(len(self.prerelease), len(other.prerelease))
