"""Repository discovery: owned listing, scan candidates and contributed-to repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from statcard.config.settings import settings
from statcard.crawlers.github.client import GitHubStatsClient, sanitize_log_extra
from statcard.crawlers.github.contracts import RepoRef, StatisticsOptions
from statcard.crawlers.github.errors import GitHubTransportError

logger = logging.getLogger(__name__)

OWNER_AFFILIATION = "owner"
SCAN_AFFILIATIONS = "owner,collaborator,organization_member"

CONTRIBUTED_REPOS_QUERY = """
query($login: String!, $cursor: String) {
  user(login: $login) {
    repositoriesContributedTo(
      first: 100
      after: $cursor
      contributionTypes: [COMMIT, ISSUE, PULL_REQUEST, PULL_REQUEST_REVIEW]
      includeUserRepositories: false
    ) {
      nodes {
        nameWithOwner
        stargazerCount
        forkCount
        isFork
        isPrivate
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

CONTRIBUTED_COUNT_QUERY = """
query($login: String!) {
  user(login: $login) {
    repositoriesContributedTo(
      contributionTypes: [COMMIT, ISSUE, PULL_REQUEST, PULL_REQUEST_REVIEW]
      includeUserRepositories: true
    ) {
      totalCount
    }
  }
}
"""


@dataclass(slots=True)
class DiscoveryResult:
    """Repositories relevant to one aggregation run.

    ``overflow`` holds merged repositories cut by ``repos_limit``; they are
    only ever prewarmed, never scanned.
    """

    owned: list[RepoRef] = field(default_factory=list)
    candidates: list[RepoRef] = field(default_factory=list)
    overflow: list[RepoRef] = field(default_factory=list)
    contributed_total: Optional[int] = None

    @property
    def stars(self) -> int:
        return sum(repo.stars for repo in self.owned)

    @property
    def forks(self) -> int:
        return sum(repo.forks for repo in self.owned)


def merge_repositories(*groups: list[RepoRef]) -> list[RepoRef]:
    """Merge groups keyed by lowercase full name; the first occurrence wins."""
    merged: dict[str, RepoRef] = {}
    for group in groups:
        for repo in group:
            merged.setdefault(repo.key, repo)
    return list(merged.values())


class RepositoryDiscovery:
    """Enumerates repositories visible to the credential."""

    def __init__(self, client: GitHubStatsClient, *, max_pages: int = settings.DISCOVERY_MAX_PAGES) -> None:
        self._client = client
        self._max_pages = max_pages

    async def discover(self, login: str, options: StatisticsOptions) -> DiscoveryResult:
        owned = await self.list_owned(include_forks=options.include_forks)
        scan_listing = await self.list_scan_candidates(include_forks=options.include_forks)

        contributed: list[RepoRef] = []
        if options.include_contributed:
            contributed = await self.list_contributed(login, include_forks=options.include_forks)
        contributed_total = await self.count_contributed(login)

        merged = merge_repositories(scan_listing or owned, owned, contributed)
        limit = max(options.repos_limit, 0)
        candidates = merged[:limit]
        logger.info(
            "Repository discovery completed",
            extra=sanitize_log_extra(
                owned=len(owned),
                merged=len(merged),
                candidates=len(candidates),
                contributed_total=contributed_total,
            ),
        )
        return DiscoveryResult(
            owned=owned,
            candidates=candidates,
            overflow=merged[limit:],
            contributed_total=contributed_total,
        )

    async def list_owned(self, *, include_forks: bool) -> list[RepoRef]:
        """Owned repositories; a failed first page leaves nothing to aggregate and is fatal."""
        collection = await self._client.paginate(
            "/user/repos",
            params=self._listing_params(OWNER_AFFILIATION),
            max_pages=self._max_pages,
        )
        if collection.pages_fetched == 0:
            raise GitHubTransportError(
                f"Failed to list owned repositories: {collection.error}",
                status_code=collection.status_code,
            )
        return self._to_refs(collection.items, include_forks=include_forks)

    async def list_scan_candidates(self, *, include_forks: bool) -> list[RepoRef]:
        """Owner + collaborator + organization-member repositories; empty on failure."""
        collection = await self._client.paginate(
            "/user/repos",
            params=self._listing_params(SCAN_AFFILIATIONS),
            max_pages=self._max_pages,
        )
        if collection.pages_fetched == 0:
            logger.warning(
                "Scan candidate listing failed, falling back to owned repositories",
                extra=sanitize_log_extra(error=collection.error),
            )
            return []
        return self._to_refs(collection.items, include_forks=include_forks)

    async def list_contributed(self, login: str, *, include_forks: bool) -> list[RepoRef]:
        """Repositories the account contributed to without owning them; empty on failure."""
        repos: list[RepoRef] = []
        cursor: Optional[str] = None

        try:
            for _ in range(self._max_pages):
                data = await self._client.graphql(CONTRIBUTED_REPOS_QUERY, {"login": login, "cursor": cursor})
                connection = ((data.get("user") or {}).get("repositoriesContributedTo")) or {}

                for node in connection.get("nodes") or []:
                    repo = self._node_to_ref(node)
                    if repo is None or (repo.is_fork and not include_forks):
                        continue
                    repos.append(repo)

                page_info = connection.get("pageInfo") or {}
                cursor = page_info.get("endCursor")
                if not page_info.get("hasNextPage") or not cursor:
                    break
        except GitHubTransportError as exc:
            logger.warning(
                "Contributed repository discovery failed, using owned repositories only",
                extra=sanitize_log_extra(login=login, error=str(exc)),
            )
            return []

        return repos

    async def count_contributed(self, login: str) -> Optional[int]:
        """Repositories contributed to, own repositories included; None when unavailable."""
        try:
            data = await self._client.graphql(CONTRIBUTED_COUNT_QUERY, {"login": login})
        except GitHubTransportError as exc:
            logger.warning(
                "Contributed repository count unavailable",
                extra=sanitize_log_extra(login=login, error=str(exc)),
            )
            return None

        connection = ((data.get("user") or {}).get("repositoriesContributedTo")) or {}
        total = connection.get("totalCount")
        return total if isinstance(total, int) else None

    @staticmethod
    def _listing_params(affiliation: str) -> dict[str, Any]:
        return {
            "affiliation": affiliation,
            "sort": "pushed",
            "direction": "desc",
            "per_page": 100,
        }

    @staticmethod
    def _to_refs(payloads: list[Any], *, include_forks: bool) -> list[RepoRef]:
        refs: list[RepoRef] = []
        for payload in payloads:
            if not isinstance(payload, dict):
                continue
            full_name = str(payload.get("full_name") or "").strip()
            if "/" not in full_name:
                continue
            is_fork = bool(payload.get("fork") or False)
            if is_fork and not include_forks:
                continue
            refs.append(
                RepoRef.from_full_name(
                    full_name,
                    stars=int(payload.get("stargazers_count") or 0),
                    forks=int(payload.get("forks_count") or 0),
                    is_fork=is_fork,
                    is_private=bool(payload.get("private") or False),
                )
            )
        return refs

    @staticmethod
    def _node_to_ref(node: Any) -> Optional[RepoRef]:
        if not isinstance(node, dict):
            return None
        full_name = str(node.get("nameWithOwner") or "").strip()
        if "/" not in full_name:
            return None
        return RepoRef.from_full_name(
            full_name,
            stars=int(node.get("stargazerCount") or 0),
            forks=int(node.get("forkCount") or 0),
            is_fork=bool(node.get("isFork") or False),
            is_private=bool(node.get("isPrivate") or False),
        )
