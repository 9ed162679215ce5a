"""Git working-tree operations through the git CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

import structlog

from vulnfixer.exceptions import GitError

log = structlog.get_logger("vulnfixer.git")

DEFAULT_REMOTE = "origin"


def authenticated_url(remote_url: str, username: str | None, token: str | None) -> str:
    """Embed credentials into an https clone URL; other schemes pass through."""
    if not token:
        return remote_url
    parts = urlsplit(remote_url)
    if parts.scheme not in ("http", "https"):
        return remote_url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    user = quote(username or "x-access-token", safe="")
    netloc = f"{user}:{quote(token, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _run(cmd: list[str], cwd: Path | None = None, redact: str | None = None) -> str:
    """Run a git command, raising GitError on failure."""
    shown = [redact_url(a) if a == redact else a for a in cmd]
    try:
        proc = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise GitError(shown, 127, "git executable not found") from exc
    if proc.returncode != 0:
        stderr = proc.stderr
        secret = urlsplit(redact).password if redact else None
        if secret:
            stderr = stderr.replace(secret, "***")
        raise GitError(shown, proc.returncode, stderr)
    return proc.stdout


class GitManager:
    """Operate on one local clone; every fix branch is cut from and returned to it.

    Commits use a fixed author identity. With *dry_run* set, pushes are
    logged and skipped.
    """

    def __init__(
        self,
        repo_path: Path,
        *,
        author_name: str = "vulnfixer-bot",
        author_email: str = "vulnfixer-bot@users.noreply.github.com",
        remote_name: str = DEFAULT_REMOTE,
        dry_run: bool = False,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.author_name = author_name
        self.author_email = author_email
        self.remote_name = remote_name
        self.dry_run = dry_run

    @classmethod
    def clone(
        cls,
        remote_url: str,
        destination: Path,
        branch: str | None = None,
        **kwargs,
    ) -> GitManager:
        """Clone *remote_url* into *destination* and check out *branch*."""
        cmd = ["git", "clone"]
        if branch:
            cmd += ["--branch", branch]
        cmd += ["--", remote_url, str(destination)]
        log.info("git.clone", url=redact_url(remote_url), branch=branch, path=str(destination))
        _run(cmd, redact=remote_url)
        return cls(destination, **kwargs)

    def git(self, *args: str) -> str:
        return _run(["git", "-C", str(self.repo_path), *args])

    # ── Branches ─────────────────────────────────────────────────────────

    def current_branch(self) -> str:
        return self.git("rev-parse", "--abbrev-ref", "HEAD").strip()

    def checkout(self, branch: str) -> None:
        """Force checkout, dropping tracked modifications."""
        self.git("checkout", "-f", branch)

    def create_branch_and_checkout(self, branch: str) -> None:
        """Create (or reset) *branch* at HEAD and check it out.

        Uncommitted changes, untracked files included, move onto the new
        branch instead of being discarded.
        """
        if self.is_clean():
            self.git("checkout", "-B", branch)
            return
        self.git("stash", "push", "--include-untracked", "-m", f"vulnfixer:{branch}")
        self.git("checkout", "-B", branch)
        self.git("stash", "pop")

    def branch_exists_in_remote(self, branch: str) -> bool:
        out = self.git("ls-remote", "--heads", self.remote_name, f"refs/heads/{branch}")
        return bool(out.strip())

    # ── Working tree ─────────────────────────────────────────────────────

    def is_clean(self) -> bool:
        return not self.git("status", "--porcelain").strip()

    def add_all_and_commit(self, message: str) -> None:
        """Stage everything, deletions included, and commit as the bot."""
        self.git("add", "--all")
        self.git(
            "-c",
            f"user.name={self.author_name}",
            "-c",
            f"user.email={self.author_email}",
            "commit",
            "--no-verify",
            "-m",
            message,
        )

    def diff(self, base: str = "HEAD", *paths: str) -> str:
        args = ["diff", base]
        if paths:
            args += ["--", *paths]
        return self.git(*args)

    # ── Remote ───────────────────────────────────────────────────────────

    def push(self, branch: str, *, force: bool = False) -> None:
        if self.dry_run:
            log.info("git.push_skipped", branch=branch, force=force, reason="dry_run")
            return
        args = ["push"]
        if force:
            args.append("--force")
        args += [self.remote_name, f"refs/heads/{branch}:refs/heads/{branch}"]
        self.git(*args)
        log.info("git.pushed", branch=branch, force=force)
