"""Release version resolution.

Turns commit messages into a release type and a previous version into the
next one:

    derive_release_kind("feat: new api\\n\\n!release: minor")  -> MINOR
    bump_version("1.4.7", "minor")                           -> "1.5.0"
    create_version_info("1.4.7", "minor")                    -> VersionInfo

Commit messages select a bump through one of two markers:
- an explicit directive, ``!release: major|minor|patch`` (case-insensitive)
- a breaking-change marker, ``!breaking`` or ``BREAKING CHANGE:``, which
  means major

When a message carries both, the explicit directive wins.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from changelog_agent.errors import InvalidVersionError
from changelog_agent.schemas import ReleaseType, VersionInfo
from changelog_agent.semver import SemVer

_DIRECTIVE_RE = re.compile(r"!release:\s*(major|minor|patch)", re.IGNORECASE)
_BREAKING_MARKERS = ("!breaking", "BREAKING CHANGE:")

# First release per bump type.
_INITIAL_VERSIONS = {
    ReleaseType.MAJOR: "1.0.0",
    ReleaseType.MINOR: "0.1.0",
    ReleaseType.PATCH: "0.0.1",
}


def derive_release_kind(message: str) -> ReleaseType | None:
    """Return the release type a single commit message asks for, if any."""
    match = _DIRECTIVE_RE.search(message)
    if match:
        return ReleaseType(match.group(1).lower())
    if any(marker in message for marker in _BREAKING_MARKERS):
        return ReleaseType.MAJOR
    return None


def max_release_type(kinds: Iterable[ReleaseType | None]) -> ReleaseType | None:
    """Reduce per-commit release types to one: the most severe wins."""
    present = [k for k in kinds if k is not None]
    if not present:
        return None
    return max(present, key=lambda k: k.severity)


def bump_version(previous: str | None, release_type: ReleaseType | str) -> str:
    """Calculate the next version.

    Args:
        previous: Last released version, or None for the first release
        release_type: Component to bump ("major", "minor" or "patch")

    Returns:
        The next version string, without prerelease or build metadata

    Raises:
        InvalidVersionError: If ``previous`` is not a valid semantic version
        ValueError: If ``release_type`` is not a known release type
    """
    release_type = ReleaseType(release_type)
    if previous is None:
        return _INITIAL_VERSIONS[release_type]
    return str(SemVer.parse(previous).bump(release_type.value))


def is_valid_version(version: str) -> bool:
    """Check whether ``version`` follows the semantic versioning grammar."""
    try:
        SemVer.parse(version)
    except InvalidVersionError:
        return False
    return True


def compare_versions(a: str, b: str) -> int:
    """Compare two versions by semver precedence.

    Returns:
        -1 if ``a`` < ``b``, 0 if they are equal, 1 if ``a`` > ``b``

    Raises:
        InvalidVersionError: If either version is not valid
    """
    return SemVer.parse(a).compare(SemVer.parse(b))


def create_version_info(
    previous: str | None, release_type: ReleaseType | str
) -> VersionInfo:
    """Resolve the next version and package it as a VersionInfo."""
    current = bump_version(previous, release_type)
    return VersionInfo(
        previous=previous,
        current=current,
        release_type=ReleaseType(release_type),
    )
