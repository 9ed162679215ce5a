"""Deterministic fix-branch names, commit messages and pull request titles."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable
from dataclasses import dataclass

from vulnfixer.exceptions import ConfigError

PACKAGE_PLACEHOLDER = "{IMPACTED_PACKAGE}"
FIX_VERSION_PLACEHOLDER = "{FIX_VERSION}"
BRANCH_HASH_PLACEHOLDER = "{BRANCH_NAME_HASH}"

BOT_NAME = "vulnfixer"
TITLE_PREFIX = "[VulnFixer]"

BRANCH_NAME_TEMPLATE = f"{BOT_NAME}-{PACKAGE_PLACEHOLDER}-{BRANCH_HASH_PLACEHOLDER}"
AGGREGATED_BRANCH_NAME_TEMPLATE = (
    f"{BOT_NAME}-update-{PACKAGE_PLACEHOLDER}-dependencies-{BRANCH_HASH_PLACEHOLDER}"
)
COMMIT_MESSAGE_TEMPLATE = f"Upgrade {PACKAGE_PLACEHOLDER} to {FIX_VERSION_PLACEHOLDER}"
PULL_REQUEST_TITLE_TEMPLATE = (
    f"{TITLE_PREFIX} Update version of {PACKAGE_PLACEHOLDER} to {FIX_VERSION_PLACEHOLDER}"
)
AGGREGATED_TITLE_TEMPLATE = f"{TITLE_PREFIX} Update {PACKAGE_PLACEHOLDER} dependencies"

MAX_BRANCH_NAME_LENGTH = 255

# git check-ref-format forbidden characters, plus whitespace
_INVALID_REF_CHARS_RE = re.compile(r"[~^:?*\[\]@{}\\\s]")
_REPEATED_DOTS_RE = re.compile(r"\.{2,}")


def md5_hash(*values: str) -> str:
    """MD5 hex digest of the plain concatenation of *values*."""
    return hashlib.md5("".join(values).encode("utf-8")).hexdigest()


def sanitize_ref_component(value: str) -> str:
    """Replace characters git refuses in ref names with ``_``."""
    cleaned = _INVALID_REF_CHARS_RE.sub("_", value.strip())
    cleaned = _REPEATED_DOTS_RE.sub("_", cleaned)
    return cleaned.lstrip("-")


def validate_branch_name_template(template: str) -> None:
    """A custom branch template must keep the hash placeholder and form a valid ref."""
    if BRANCH_HASH_PLACEHOLDER not in template:
        raise ConfigError(
            f"branch name template must contain {BRANCH_HASH_PLACEHOLDER}: {template!r}"
        )
    probe = (
        template.replace(PACKAGE_PLACEHOLDER, "pkg")
        .replace(FIX_VERSION_PLACEHOLDER, "1.0.0")
        .replace(BRANCH_HASH_PLACEHOLDER, "0" * 32)
    )
    if probe.startswith("-") or _INVALID_REF_CHARS_RE.search(probe.replace(" ", "")):
        raise ConfigError(f"branch name template contains invalid characters: {template!r}")
    if len(probe) > MAX_BRANCH_NAME_LENGTH:
        raise ConfigError(f"branch name template is too long: {template!r}")


def technologies_label(technologies: Iterable[str], separator: str = "-") -> str:
    return separator.join(sorted({t for t in technologies if t}))


def _render(template: str, package: str = "", fix_version: str = "", branch_hash: str = "") -> str:
    return (
        template.replace(PACKAGE_PLACEHOLDER, package)
        .replace(FIX_VERSION_PLACEHOLDER, fix_version)
        .replace(BRANCH_HASH_PLACEHOLDER, branch_hash)
    )


def _finalize_branch_name(template: str, package: str, fix_version: str, branch_hash: str) -> str:
    package = sanitize_ref_component(package)
    fix_version = sanitize_ref_component(fix_version)
    name = _render(template, package, fix_version, branch_hash).replace(" ", "_")
    overflow = len(name) - MAX_BRANCH_NAME_LENGTH
    if overflow > 0 and PACKAGE_PLACEHOLDER in template and len(package) > overflow:
        name = _render(template, package[:-overflow], fix_version, branch_hash).replace(" ", "_")
    return sanitize_ref_component(name)[:MAX_BRANCH_NAME_LENGTH]


@dataclass(frozen=True)
class NamingTemplates:
    """User overrides for branch, commit and title formats; None keeps the default."""

    branch_name_template: str | None = None
    commit_message_template: str | None = None
    pull_request_title_template: str | None = None

    def __post_init__(self) -> None:
        if self.branch_name_template:
            validate_branch_name_template(self.branch_name_template)

    # ── per-package ──────────────────────────────────────────────────────

    def fix_branch_name(self, base_branch: str, package: str, fix_version: str) -> str:
        branch_hash = md5_hash(BOT_NAME, base_branch, package, fix_version)
        template = self.branch_name_template or BRANCH_NAME_TEMPLATE
        return _finalize_branch_name(template, package, fix_version, branch_hash)

    def commit_message(self, package: str, fix_version: str) -> str:
        template = self.commit_message_template or COMMIT_MESSAGE_TEMPLATE
        return _render(template, package, fix_version)

    def pull_request_title(self, package: str, fix_version: str) -> str:
        template = self.pull_request_title_template or PULL_REQUEST_TITLE_TEMPLATE
        return _render(template, package, fix_version)

    # ── aggregated ───────────────────────────────────────────────────────

    def aggregated_branch_name(self, base_branch: str, technologies: Iterable[str]) -> str:
        techs = sorted(set(technologies))
        branch_hash = md5_hash(BOT_NAME, base_branch, *techs)
        template = self.branch_name_template or AGGREGATED_BRANCH_NAME_TEMPLATE
        return _finalize_branch_name(template, technologies_label(techs), "", branch_hash)

    def aggregated_commit_message(self, technologies: Iterable[str]) -> str:
        label = technologies_label(technologies, ", ")
        if self.commit_message_template:
            return _render(self.commit_message_template, label)
        return _render(AGGREGATED_TITLE_TEMPLATE, label)

    def aggregated_pull_request_title(self, technologies: Iterable[str]) -> str:
        label = technologies_label(technologies, ", ")
        if self.pull_request_title_template:
            return _render(self.pull_request_title_template, label)
        return _render(AGGREGATED_TITLE_TEMPLATE, label)
