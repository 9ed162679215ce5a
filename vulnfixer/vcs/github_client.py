"""GitHub REST client with pagination, rate-limit handling, and retries."""

from __future__ import annotations

import io
import re
import tarfile
import time
from collections.abc import Iterator
from pathlib import Path, PurePosixPath
from typing import Any

import httpx
import structlog

from vulnfixer.vcs.base import (
    BranchInfo,
    PullRequestInfo,
    PullRequestState,
    RepositoryInfo,
    VcsProvider,
)

log = structlog.get_logger("vulnfixer.vcs")

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

DEFAULT_API_ENDPOINT = "https://api.github.com"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_RETRYABLE_METHODS = frozenset({"GET", "HEAD"})


class RateLimitError(httpx.HTTPStatusError):
    """GitHub kept answering 403 rate-limited after every retry."""

    def __init__(self, retry_after: int, response: httpx.Response) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"rate limit exceeded, retry after {retry_after}s",
            request=response.request,
            response=response,
        )


def _pull_request_from_json(data: dict[str, Any]) -> PullRequestInfo:
    head = data.get("head") or {}
    base = data.get("base") or {}
    head_repo = head.get("repo") or {}
    base_repo = base.get("repo") or {}
    return PullRequestInfo(
        id=data["number"],
        title=data.get("title") or "",
        body=data.get("body") or "",
        source=BranchInfo(
            name=head.get("ref", ""),
            repository=head_repo.get("name", ""),
            owner=(head_repo.get("owner") or {}).get("login", ""),
        ),
        target=BranchInfo(
            name=base.get("ref", ""),
            repository=base_repo.get("name", ""),
            owner=(base_repo.get("owner") or {}).get("login", ""),
        ),
        url=data.get("html_url", ""),
    )


class GitHubClient:
    """Thin synchronous wrapper around the GitHub REST API."""

    provider = VcsProvider.GITHUB

    def __init__(
        self,
        token: str | None = None,
        api_endpoint: str = DEFAULT_API_ENDPOINT,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"token {token}"
        self._client = httpx.Client(
            base_url=api_endpoint.rstrip("/"),
            headers=headers,
            timeout=30.0,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── pull requests ──────────────────────────────────────────────────────

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        source_branch: str,
        target_branch: str,
        title: str,
        body: str,
    ) -> PullRequestInfo:
        response = self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "body": body, "head": source_branch, "base": target_branch},
        )
        pr = _pull_request_from_json(response.json())
        log.info("github.pr_created", repo=f"{owner}/{repo}", number=pr.id, head=source_branch)
        return pr

    def update_pull_request(
        self,
        owner: str,
        repo: str,
        pr_id: int,
        *,
        title: str,
        body: str,
        target_branch: str = "",
        state: PullRequestState | None = None,
    ) -> None:
        payload: dict[str, Any] = {"title": title, "body": body}
        if target_branch:
            payload["base"] = target_branch
        if state is not None:
            payload["state"] = state.value
        self._request("PATCH", f"/repos/{owner}/{repo}/pulls/{pr_id}", json=payload)
        log.info("github.pr_updated", repo=f"{owner}/{repo}", number=pr_id)

    def list_open_pull_requests_with_body(self, owner: str, repo: str) -> list[PullRequestInfo]:
        return [
            _pull_request_from_json(item)
            for item in self.get_paginated(f"/repos/{owner}/{repo}/pulls", {"state": "open"})
        ]

    def add_pull_request_comment(self, owner: str, repo: str, pr_id: int, content: str) -> None:
        self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{pr_id}/comments", json={"body": content}
        )

    # ── repository ─────────────────────────────────────────────────────────

    def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo:
        data = self._request("GET", f"/repos/{owner}/{repo}").json()
        return RepositoryInfo(
            clone_url=data.get("clone_url", ""),
            default_branch=data.get("default_branch", ""),
            private=bool(data.get("private", False)),
        )

    def download_repository(self, owner: str, repo: str, branch: str, local_path: Path) -> None:
        """Download the *branch* tarball and unpack it into *local_path*.

        GitHub wraps the tree in a ``<owner>-<repo>-<sha>/`` folder, which is
        stripped.
        """
        response = self._request("GET", f"/repos/{owner}/{repo}/tarball/{branch}")
        local_path.mkdir(parents=True, exist_ok=True)
        with tarfile.open(fileobj=io.BytesIO(response.content), mode="r:gz") as archive:
            extracted = _extract_stripped(archive, local_path)
        log.info(
            "github.repository_downloaded",
            repo=f"{owner}/{repo}",
            branch=branch,
            files=extracted,
        )

    # ── pagination ─────────────────────────────────────────────────────────

    def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 10,
    ) -> Iterator[dict[str, Any]]:
        """Yield JSON items from a paginated GitHub API endpoint.

        Follows ``Link: <...>; rel="next"`` headers and respects rate-limit
        headers. Stops after *max_pages* pages.
        """
        url: str | None = path
        params = dict(params or {})
        params.setdefault("per_page", 100)
        page = 0

        while url and page < max_pages:
            response = self._request("GET", url, params=params if page == 0 else None)

            data = response.json()
            if isinstance(data, list):
                yield from data
            else:
                yield data

            url = self._parse_next_link(response.headers.get("Link", ""))
            page += 1

    # ── internal ───────────────────────────────────────────────────────────

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = self._request_with_retry(method, url, **kwargs)
        self._check_rate_limit(response)
        return response

    def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send with backoff on 403 rate-limit; 5xx and timeouts are retried for reads only."""
        retryable = method.upper() in _RETRYABLE_METHODS
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._client.request(method, url, follow_redirects=True, **kwargs)

                # 403 with rate-limit headers → sleep and retry
                if resp.status_code == 403 and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    time.sleep(wait)
                    last_exc = RateLimitError(wait, resp)
                    continue

                if resp.status_code < 500 or not retryable:
                    resp.raise_for_status()
                    return resp

                # 5xx on a read: retry
                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                if not retryable:
                    raise
                log.warning(
                    "github.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                time.sleep(delay)

        raise last_exc  # type: ignore[misc]

    def _check_rate_limit(self, response: httpx.Response) -> None:
        """Sleep until rate-limit resets if remaining == 0."""
        remaining = self._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None and remaining == 0:
            wait = self._get_rate_limit_wait(response)
            log.warning("github.rate_limit_wait", wait_seconds=wait)
            time.sleep(wait)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Check if a 403 response is due to rate limiting."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            try:
                return int(remaining) == 0
            except (ValueError, TypeError):
                pass
        # secondary rate limits only send Retry-After
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        """Calculate how long to wait based on rate-limit headers."""
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except (ValueError, TypeError):
                pass
        reset_ts = response.headers.get("X-RateLimit-Reset")
        if reset_ts is not None:
            try:
                return max(int(reset_ts) - int(time.time()), 1)
            except (ValueError, TypeError):
                pass
        return 60

    @staticmethod
    def _parse_header_int(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the ``next`` URL from a GitHub ``Link`` header."""
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None


def _extract_stripped(archive: tarfile.TarFile, destination: Path) -> int:
    """Extract *archive* without its top-level folder; unsafe members are skipped."""
    if hasattr(tarfile, "data_filter"):
        archive.extraction_filter = tarfile.data_filter
    count = 0
    for member in archive.getmembers():
        parts = PurePosixPath(member.name).parts[1:]
        if not parts or ".." in parts or member.name.startswith("/"):
            continue
        if member.issym() or member.islnk():
            link = PurePosixPath(member.linkname)
            if link.is_absolute() or ".." in link.parts:
                continue
        if not (member.isdir() or member.isfile() or member.issym() or member.islnk()):
            continue
        member.name = str(PurePosixPath(*parts))
        if member.islnk():
            member.linkname = str(PurePosixPath(*PurePosixPath(member.linkname).parts[1:]))
        archive.extract(member, destination)
        count += 1
    return count
