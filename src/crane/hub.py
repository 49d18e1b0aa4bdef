"""Typed client for the GitHub commits and statuses API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from crane.errors import AuthError, ParseError, TransportError
from crane.models import CommitLocator, RepositoryLocator, Status

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
ACCEPT = "application/vnd.github.v3+json"


class CommitResponse(BaseModel):
    sha: str
    html_url: str | None = None


_commits_adapter = TypeAdapter(list[CommitResponse])
_statuses_adapter = TypeAdapter(list[Status])


def _check_header_value(name: str, value: str) -> None:
    """Reject header values httpx would choke on, before any request goes out."""
    try:
        value.encode("ascii")
    except UnicodeEncodeError as exc:
        raise AuthError(f"{name} header is not valid ASCII") from exc
    if any(ch in value for ch in "\r\n\0"):
        raise AuthError(f"{name} header contains control characters")


class GitHubClient:
    """Authenticated access to the three calls the engine needs.

    None of these calls are retried here; the engine's next attempt
    re-derives state from the platform instead.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        token = token.strip()
        if not token or any(ch.isspace() for ch in token):
            raise AuthError("access token is empty or contains whitespace")
        authorization = f"Bearer {token}"
        _check_header_value("Authorization", authorization)

        self._http = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": authorization,
                "Accept": ACCEPT,
                "User-Agent": "crane-ci",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # API calls
    # ------------------------------------------------------------------

    def latest_commit(self, repo: RepositoryLocator, branch: str) -> CommitLocator | None:
        """Most recent commit on ``branch``, or None if none is visible."""
        response = self._request(
            "GET",
            f"/repos/{repo.owner}/{repo.name}/commits",
            params={"sha": branch, "per_page": 1},
            allow=(409,),
        )
        # 409 means the repository is empty
        if response.status_code == 409:
            return None
        commits = self._parse(response, _commits_adapter)
        if not commits:
            return None
        try:
            return CommitLocator(repository=repo, sha=commits[0].sha)
        except ValidationError as exc:
            raise ParseError(f"invalid commit sha {commits[0].sha!r}") from exc

    def statuses(self, commit: CommitLocator) -> list[Status]:
        """Every status recorded for ``commit``, newest first, all contexts."""
        repo = commit.repository
        url: str | None = f"/repos/{repo.owner}/{repo.name}/statuses/{commit.sha}"
        params: dict[str, Any] | None = {"per_page": 100}
        seen: set[str] = set()
        statuses: list[Status] = []
        while url is not None and url not in seen:
            seen.add(url)
            response = self._request("GET", url, params=params)
            statuses.extend(self._parse(response, _statuses_adapter))
            # The next-page URL already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None
        return statuses

    def set_status(self, commit: CommitLocator, status: Status) -> None:
        """Append a status entry to ``commit``."""
        repo = commit.repository
        self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/statuses/{commit.sha}",
            json=status.request_body(),
        )
        logger.info(
            "set %s status %s on %s", status.context, status.state.value, commit.short_sha
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        allow: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code in allow:
            return response
        if response.status_code in (401, 403):
            raise AuthError(
                f"{method} {url} rejected credentials (HTTP {response.status_code})"
            )
        if response.is_error:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _parse(response: httpx.Response, adapter: TypeAdapter) -> Any:
        try:
            return adapter.validate_json(response.content)
        except ValidationError as exc:
            raise ParseError(
                f"unexpected response from {response.request.url.path}: "
                f"{exc.error_count()} validation error(s)"
            ) from exc
