"""
GitHub GraphQL client for the two facts a rehearsal needs from GitHub.

- the set of open pull requests (to rebuild a pull-request stack)
- which merge methods the repository allows
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

import httpx
import structlog

from deploy_rehearsal.domain.models import PullRequest, RepoMergeSettings

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_GRAPHQL_URL: Final[str] = "https://api.github.com/graphql"
MAX_PAGE_SIZE: Final[int] = 100

_OPEN_PULL_REQUESTS_QUERY: Final[str] = """
query($owner: String!, $repo: String!, $endCursor: String, $pageSize: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequests(first: $pageSize, states: [OPEN], after: $endCursor, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        number
        baseRefName
        headRefName
        title
        body
      }
      pageInfo {
        endCursor
        hasNextPage
      }
    }
  }
}
"""

_MERGE_SETTINGS_QUERY: Final[str] = """
query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    mergeCommitAllowed
    squashMergeAllowed
    rebaseMergeAllowed
  }
}
"""


class GitHubApiError(RuntimeError):
    """Raised for HTTP failures, transport failures, and GraphQL error payloads."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """Minimal GitHub GraphQL client. Requests are never retried."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_GRAPHQL_URL,
        page_size: int = MAX_PAGE_SIZE,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: Any | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token must not be empty")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be within 1..{MAX_PAGE_SIZE}, got {page_size}")
        self.api_url = api_url
        self.page_size = page_size
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._client = httpx.Client(
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/vnd.github+json",
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_open_pull_requests(self, owner: str, repo: str) -> tuple[PullRequest, ...]:
        """Every open pull request of ``owner/repo``, following cursor pagination."""
        pull_requests: list[PullRequest] = []
        cursor: str | None = None
        while True:
            data = self._graphql(
                _OPEN_PULL_REQUESTS_QUERY,
                {"owner": owner, "repo": repo, "endCursor": cursor, "pageSize": self.page_size},
            )
            connection = _repository(data, owner, repo).get("pullRequests") or {}
            for node in connection.get("nodes") or []:
                pull_requests.append(_pull_request_from_node(node))

            page_info = connection.get("pageInfo") or {}
            self._logger.debug(
                "github_pull_requests_page",
                owner=owner,
                repo=repo,
                received=len(pull_requests),
                has_next_page=bool(page_info.get("hasNextPage")),
            )
            if not page_info.get("hasNextPage"):
                return tuple(pull_requests)
            cursor = page_info.get("endCursor")
            if not cursor:
                raise GitHubApiError("GitHub reported another page without an endCursor")

    def get_repo_merge_settings(self, owner: str, repo: str) -> RepoMergeSettings:
        data = self._graphql(_MERGE_SETTINGS_QUERY, {"owner": owner, "repo": repo})
        repository = _repository(data, owner, repo)
        return RepoMergeSettings(
            allow_merge_commit=bool(repository.get("mergeCommitAllowed")),
            allow_squash_merge=bool(repository.get("squashMergeAllowed")),
            allow_rebase_merge=bool(repository.get("rebaseMergeAllowed")),
        )

    def _graphql(self, query: str, variables: Mapping[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(
                self.api_url,
                json={"query": query, "variables": dict(variables)},
            )
        except httpx.HTTPError as exc:
            raise GitHubApiError(f"GitHub GraphQL request failed: {exc}") from exc

        if response.status_code >= 400:
            raise GitHubApiError(
                f"GitHub GraphQL request failed with HTTP {response.status_code}: "
                f"{response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GitHubApiError("GitHub GraphQL response is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise GitHubApiError("GitHub GraphQL response must be a JSON object")

        errors = payload.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise GitHubApiError(f"GitHub GraphQL errors: {messages}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise GitHubApiError("GitHub GraphQL response has no data object")
        return data


def _repository(data: Mapping[str, Any], owner: str, repo: str) -> dict[str, Any]:
    repository = data.get("repository")
    if not isinstance(repository, dict):
        raise GitHubApiError(f"Repository {owner}/{repo} not found or not accessible")
    return repository


def _pull_request_from_node(node: Mapping[str, Any]) -> PullRequest:
    try:
        return PullRequest(
            number=int(node["number"]),
            source_branch=str(node["headRefName"]),
            target_branch=str(node["baseRefName"]),
            title=str(node.get("title") or ""),
            description=str(node.get("body") or ""),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise GitHubApiError(f"Malformed pull request node: {exc}") from exc


__all__ = [
    "DEFAULT_GRAPHQL_URL",
    "MAX_PAGE_SIZE",
    "GitHubApiError",
    "GitHubClient",
]
