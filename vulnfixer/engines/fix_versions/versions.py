"""Fix-version arithmetic: interval notation parsing and minimal fix selection."""

from __future__ import annotations

import re
from collections.abc import Sequence
from itertools import zip_longest

from packaging.version import InvalidVersion, Version

_TOKEN_SPLIT_RE = re.compile(r"[.\-_+]")


def parse_version_change_string(fix_version: str) -> str:
    """Return the lower-bound endpoint of an interval-notation fix version.

    1.0         --> 1.0 <= x
    (,1.0]      --> x <= 1.0          unsupported
    (,1.0)      --> x < 1.0           unsupported
    [1.0]       --> x == 1.0
    (1.0,)      --> 1.0 < x           unsupported
    (1.0,2.0)   --> 1.0 < x < 2.0     unsupported
    [1.0,2.0]   --> 1.0 <= x <= 2.0

    Open lower bounds yield an empty string.
    """
    lower_bound = fix_version.split(",")[0].strip()
    if not lower_bound or lower_bound.startswith("("):
        return ""
    return lower_bound.strip("[]").strip()


def strip_version_prefix(version: str) -> str:
    """Drop a single leading ``v`` (Go module versions)."""
    version = version.strip()
    return version[1:] if version.startswith("v") else version


def compare_versions(left: str, right: str) -> int:
    """Three-way comparison: -1 if left < right, 0 if equal, 1 if left > right.

    PEP 440 parsing first; versions that packaging rejects (``1.2.3.RELEASE``,
    ``2.0-M1``) fall back to a dotted-token comparison where numeric tokens
    compare as integers and beat textual qualifiers.
    """
    try:
        lv, rv = Version(left), Version(right)
    except InvalidVersion:
        return _compare_tokens(left, right)
    if lv < rv:
        return -1
    if lv > rv:
        return 1
    return 0


def _compare_tokens(left: str, right: str) -> int:
    left_tokens = _TOKEN_SPLIT_RE.split(strip_version_prefix(left))
    right_tokens = _TOKEN_SPLIT_RE.split(strip_version_prefix(right))
    for lt, rt in zip_longest(left_tokens, right_tokens, fillvalue="0"):
        if lt == rt:
            continue
        if lt.isdigit() and rt.isdigit():
            return -1 if int(lt) < int(rt) else 1
        if lt.isdigit():
            return 1
        if rt.isdigit():
            return -1
        return -1 if lt.lower() < rt.lower() else 1
    return 0


def major_version(version: str) -> int | None:
    """Leading numeric component of *version*, or None if it has none."""
    head = _TOKEN_SPLIT_RE.split(strip_version_prefix(version))[0]
    return int(head) if head.isdigit() else None


def is_major_upgrade(current_version: str, target_version: str) -> bool:
    current_major = major_version(current_version)
    target_major = major_version(target_version)
    if current_major is None or target_major is None:
        return False
    return target_major > current_major


def get_minimal_fix_version(
    impacted_version: str,
    fix_versions: Sequence[str],
    *,
    allow_major_upgrades: bool = True,
) -> str:
    """Pick the first candidate fix version that is newer than *impacted_version*.

    *fix_versions* arrives sorted ascending from the scanner, so the first
    qualifying candidate is the minimal safe upgrade. Returns ``""`` when no
    candidate qualifies. With *allow_major_upgrades* off, candidates that
    bump the major version are skipped.
    """
    current = strip_version_prefix(impacted_version)
    for fix_version in fix_versions:
        candidate = parse_version_change_string(fix_version)
        if not candidate:
            continue
        if compare_versions(candidate, current) <= 0:
            continue
        if not allow_major_upgrades and is_major_upgrade(current, candidate):
            continue
        return candidate
    return ""
