"""Configuration: YAML file with environment-variable fallbacks, validated by pydantic."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vulnfixer.engines.fix_lifecycle.naming import NamingTemplates, validate_branch_name_template
from vulnfixer.exceptions import ConfigError
from vulnfixer.scanner.models import SEVERITY_RANK
from vulnfixer.vcs.base import VcsProvider
from vulnfixer.vcs.github_client import DEFAULT_API_ENDPOINT

CONFIG_FILE_RELATIVE_PATH = Path(".vulnfixer") / "vulnfixer-config.yml"

DEFAULT_SCAN_COMMAND = "jf audit --format=simple-json"

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})

# (section, field) -> env var, for scalar fields
_ENV_FIELDS: dict[tuple[str, str], str] = {
    ("git", "provider"): "VULNFIXER_GIT_PROVIDER",
    ("git", "api_endpoint"): "VULNFIXER_GIT_API_ENDPOINT",
    ("git", "token"): "VULNFIXER_GIT_TOKEN",
    ("git", "username"): "VULNFIXER_GIT_USERNAME",
    ("git", "repo_owner"): "VULNFIXER_GIT_OWNER",
    ("git", "repo_name"): "VULNFIXER_GIT_REPO",
    ("git", "branch_name_template"): "VULNFIXER_BRANCH_NAME_TEMPLATE",
    ("git", "commit_message_template"): "VULNFIXER_COMMIT_MESSAGE_TEMPLATE",
    ("git", "pull_request_title_template"): "VULNFIXER_PULL_REQUEST_TITLE_TEMPLATE",
    ("scan", "min_severity"): "VULNFIXER_MIN_SEVERITY",
}
_ENV_BOOL_FIELDS: dict[tuple[str, str], str] = {
    ("git", "aggregate_fixes"): "VULNFIXER_GIT_AGGREGATE_FIXES",
    ("scan", "allow_major_upgrades"): "VULNFIXER_ALLOW_MAJOR_UPGRADES",
}


class GitConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: VcsProvider = VcsProvider.GITHUB
    api_endpoint: str = DEFAULT_API_ENDPOINT
    token: str = ""
    username: str = "x-access-token"
    repo_owner: str = ""
    repo_name: str = ""
    branches: list[str] = Field(default_factory=list)
    clone_url: str | None = None
    aggregate_fixes: bool = False
    branch_name_template: str | None = None
    commit_message_template: str | None = None
    pull_request_title_template: str | None = None
    author_name: str = "vulnfixer-bot"
    author_email: str = "vulnfixer-bot@users.noreply.github.com"

    @field_validator("branch_name_template")
    @classmethod
    def _check_branch_template(cls, value: str | None) -> str | None:
        if value:
            validate_branch_name_template(value)
        return value or None


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    working_dirs: list[str] = Field(default_factory=lambda: ["."])
    pip_requirements_file: str | None = None
    scan_command: str = DEFAULT_SCAN_COMMAND
    report_file: str | None = None


class ScanConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    allow_major_upgrades: bool = True
    min_severity: str | None = None
    projects: list[ProjectConfig] = Field(default_factory=lambda: [ProjectConfig()])

    @field_validator("min_severity")
    @classmethod
    def _check_severity(cls, value: str | None) -> str | None:
        if value and value.strip().lower() not in SEVERITY_RANK:
            raise ValueError(f"unknown severity {value!r}")
        return value or None


class VulnFixerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    git: GitConfig = Field(default_factory=GitConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    dry_run: bool = False

    def naming_templates(self) -> NamingTemplates:
        return NamingTemplates(
            branch_name_template=self.git.branch_name_template,
            commit_message_template=self.git.commit_message_template,
            pull_request_title_template=self.git.pull_request_title_template,
        )


def parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {value!r}")


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def find_config_file(start: Path | None = None) -> Path | None:
    """Look for the config file in *start* and its parents."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_RELATIVE_PATH
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _apply_env(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Fill fields the file left unset from the environment."""
    git = dict(data.get("git") or {})
    scan = dict(data.get("scan") or {})
    sections = {"git": git, "scan": scan}

    for (section, key), var in _ENV_FIELDS.items():
        if key not in sections[section] and env.get(var):
            sections[section][key] = env[var]
    for (section, key), var in _ENV_BOOL_FIELDS.items():
        if key not in sections[section] and env.get(var):
            sections[section][key] = parse_bool(env[var], var)

    if "branches" not in git and env.get("VULNFIXER_GIT_BASE_BRANCH"):
        git["branches"] = _split_list(env["VULNFIXER_GIT_BASE_BRANCH"])

    if "projects" not in scan:
        project: dict[str, Any] = {}
        if env.get("VULNFIXER_WORKING_DIR"):
            project["working_dirs"] = _split_list(env["VULNFIXER_WORKING_DIR"])
        if env.get("VULNFIXER_REQUIREMENTS_FILE"):
            project["pip_requirements_file"] = env["VULNFIXER_REQUIREMENTS_FILE"]
        if env.get("VULNFIXER_SCAN_COMMAND"):
            project["scan_command"] = env["VULNFIXER_SCAN_COMMAND"]
        scan["projects"] = [project]

    merged = dict(data)
    merged["git"] = git
    merged["scan"] = scan
    if "dry_run" not in merged and env.get("VULNFIXER_DRY_RUN"):
        merged["dry_run"] = parse_bool(env["VULNFIXER_DRY_RUN"], "VULNFIXER_DRY_RUN")
    return merged


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    require_repository: bool = True,
) -> VulnFixerConfig:
    """Build the configuration from *path* (or the discovered file) and *env*.

    Raises ``ConfigError`` for unreadable files, invalid values, and, with
    *require_repository*, a missing token, owner or repository name.
    """
    env = os.environ if env is None else env
    config_path = path if path is not None else find_config_file()
    data = _read_yaml(config_path) if config_path is not None else {}
    try:
        config = VulnFixerConfig.model_validate(_apply_env(data, env))
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc

    if require_repository:
        missing = [
            var
            for var, value in (
                ("VULNFIXER_GIT_TOKEN", config.git.token),
                ("VULNFIXER_GIT_OWNER", config.git.repo_owner),
                ("VULNFIXER_GIT_REPO", config.git.repo_name),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"missing required configuration: {', '.join(missing)}")
    return config
