"""Fix-set checksum and its hidden-comment round trip through PR bodies."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable

from vulnfixer.engines.fix_versions.models import FixCandidate

CHECKSUM_MARKER = "Checksum:"

_CHECKSUM_RE = re.compile(re.escape(CHECKSUM_MARKER) + r" ([0-9a-fA-F]{32})")


def compute_fix_checksum(candidates: Iterable[FixCandidate]) -> str:
    """MD5 over the sorted unique keys of every finding in *candidates*.

    Iteration order of *candidates* does not affect the result.
    """
    keys = sorted({key for candidate in candidates for key in candidate.fix_keys()})
    digest = hashlib.md5()
    for key in keys:
        digest.update(key.encode("utf-8"))
    return digest.hexdigest()


def markdown_comment(text: str) -> str:
    """Markdown that renders as nothing but stays in the raw body."""
    return f"\n[comment]: <> ({text})\n"


def serialize_checksum(checksum: str) -> str:
    return markdown_comment(f"{CHECKSUM_MARKER} {checksum}")


def deserialize_checksum(body: str) -> str:
    """Return the first embedded checksum in *body*, or ``""``."""
    match = _CHECKSUM_RE.search(body or "")
    return match.group(1).lower() if match else ""


def embed_checksum(body: str, checksum: str) -> str:
    return body.rstrip("\n") + "\n" + serialize_checksum(checksum)
