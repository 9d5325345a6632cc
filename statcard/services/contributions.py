"""Contribution sub-computations: all-time total, lines-of-code strategies and traffic."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

from statcard.config.settings import settings
from statcard.crawlers.github.client import GitHubStatsClient, sanitize_log_extra
from statcard.crawlers.github.contracts import (
    ContributorStat,
    Failed,
    FetchOutcome,
    Fetched,
    Pending,
    RepoRef,
    TrafficSummary,
    WeeklyBucket,
)
from statcard.crawlers.github.errors import GitHubTransportError, GraphQLError
from statcard.services.cache import TTLCache
from statcard.services.concurrency import run_bounded
from statcard.services.retry import fetch_with_retry
from statcard.utils.helpers import parse_datetime, to_iso8601, utc_now

logger = logging.getLogger(__name__)

ACCOUNT_CREATED_AT_QUERY = """
query($login: String!) {
  user(login: $login) {
    createdAt
  }
}
"""

CONTRIBUTION_CALENDAR_QUERY = """
query($login: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $login) {
    contributionsCollection(from: $from, to: $to) {
      contributionCalendar {
        totalContributions
      }
    }
  }
}
"""

MERGED_PULL_REQUESTS_QUERY = """
query($login: String!, $first: Int!, $cursor: String) {
  user(login: $login) {
    pullRequests(
      first: $first
      after: $cursor
      states: [MERGED]
      orderBy: { field: CREATED_AT, direction: DESC }
    ) {
      nodes {
        additions
        deletions
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

USER_NODE_ID_QUERY = """
query($login: String!) {
  user(login: $login) {
    id
  }
}
"""

COMMIT_HISTORY_QUERY = """
query($owner: String!, $name: String!, $userId: ID!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    defaultBranchRef {
      target {
        ... on Commit {
          history(first: $first, after: $cursor, author: { id: $userId }) {
            nodes {
              additions
              deletions
            }
            pageInfo {
              hasNextPage
              endCursor
            }
          }
        }
      }
    }
  }
}
"""

GRAPHQL_PAGE_SIZE = 100


@dataclass(slots=True)
class LocResult:
    """Lines-changed figure plus the repository tallies it was derived from."""

    loc_changed: Optional[int]
    items_counted: int = 0
    commits_counted: int = 0
    repos_scanned: int = 0
    repos_matched: int = 0
    repos_pending: int = 0
    repos_failed: int = 0


def year_windows(start: datetime, end: datetime) -> list[tuple[datetime, datetime]]:
    """Split [start's UTC day, end) into contiguous windows of at most one year.

    contributionsCollection rejects spans longer than a year. Anniversaries of
    Feb 29 clamp to Feb 28 so no window exceeds that limit.
    """
    start = _as_utc(start)
    end = _as_utc(end)

    windows: list[tuple[datetime, datetime]] = []
    cursor = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
    while cursor < end:
        following = _add_year(cursor)
        windows.append((cursor, min(following, end)))
        cursor = following
    return windows


def _add_year(value: datetime) -> datetime:
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        return value.replace(year=value.year + 1, day=28)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_contributor_stats(body: Any) -> Optional[list[ContributorStat]]:
    """Decode /stats/contributors payload; None when the shape is unusable."""
    if not isinstance(body, list):
        return None

    stats: list[ContributorStat] = []
    try:
        for item in body:
            if not isinstance(item, dict):
                return None
            raw_weeks = item.get("weeks") or []
            if not isinstance(raw_weeks, list):
                return None
            author = item.get("author")
            login = author.get("login") if isinstance(author, dict) else None
            weeks = tuple(
                WeeklyBucket(
                    additions=int(week.get("a") or 0),
                    deletions=int(week.get("d") or 0),
                    commits=int(week.get("c") or 0),
                )
                for week in raw_weeks
                if isinstance(week, dict)
            )
            stats.append(
                ContributorStat(
                    login=login if isinstance(login, str) else None,
                    total=int(item.get("total") or 0),
                    weeks=weeks,
                )
            )
    except (TypeError, ValueError):
        return None
    return stats


def find_contributor(stats: Sequence[ContributorStat], login: str) -> Optional[ContributorStat]:
    target = login.casefold()
    for entry in stats:
        if entry.login is not None and entry.login.casefold() == target:
            return entry
    return None


class AllTimeContributions:
    """Sums yearly contribution-calendar totals since account creation."""

    def __init__(
        self,
        client: GitHubStatsClient,
        cache: TTLCache,
        *,
        concurrency: int = settings.DEFAULT_CONCURRENCY,
        ttl_seconds: float = settings.CACHE_TTL_SECONDS,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._cache = cache
        self._concurrency = concurrency
        self._ttl_seconds = ttl_seconds
        self._now = now

    async def compute(self, login: str) -> Optional[int]:
        """Total or None; a partial sum is never reported."""
        cache_key = f"alltime:{login.lower()}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = await self._client.graphql(ACCOUNT_CREATED_AT_QUERY, {"login": login})
            created_at = parse_datetime((data.get("user") or {}).get("createdAt"))
            if created_at is None:
                raise GraphQLError("GitHub GraphQL error: account creation timestamp missing")

            windows = year_windows(created_at, self._now())
            totals = await run_bounded(
                windows,
                self._concurrency,
                lambda window: self._window_total(login, window),
            )
        except GitHubTransportError as exc:
            logger.warning(
                "All-time contributions unavailable",
                extra=sanitize_log_extra(login=login, error=str(exc)),
            )
            return None

        total = sum(totals)
        self._cache.set(cache_key, total, self._ttl_seconds)
        return total

    async def _window_total(self, login: str, window: tuple[datetime, datetime]) -> int:
        window_start, window_end = window
        data = await self._client.graphql(
            CONTRIBUTION_CALENDAR_QUERY,
            {"login": login, "from": to_iso8601(window_start), "to": to_iso8601(window_end)},
        )
        calendar = (((data.get("user") or {}).get("contributionsCollection") or {}).get("contributionCalendar")) or {}
        total = calendar.get("totalContributions")
        if not isinstance(total, int):
            raise GraphQLError("GitHub GraphQL error: contribution calendar total missing")
        return total


class ContributorStatsStrategy:
    """Lines changed from per-repository contributor statistics."""

    def __init__(
        self,
        client: GitHubStatsClient,
        cache: TTLCache,
        *,
        concurrency: int = settings.DEFAULT_CONCURRENCY,
        retry_attempts: int = settings.STATS_RETRY_ATTEMPTS,
        retry_delays: Sequence[float] = settings.STATS_RETRY_DELAYS,
        ttl_seconds: float = settings.CACHE_TTL_SECONDS,
        pending_ttl_seconds: float = settings.PENDING_CACHE_TTL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self._concurrency = concurrency
        self._retry_attempts = retry_attempts
        self._retry_delays = tuple(retry_delays)
        self._ttl_seconds = ttl_seconds
        self._pending_ttl_seconds = pending_ttl_seconds
        self._sleep = sleep
        self._background: set[asyncio.Task[None]] = set()

    async def collect(self, login: str, repos: Sequence[RepoRef]) -> LocResult:
        outcomes = await run_bounded(repos, self._concurrency, self.fetch_outcome)

        result = LocResult(loc_changed=0, repos_scanned=len(repos))
        for repo, outcome in zip(repos, outcomes):
            if outcome.is_pending:
                result.repos_pending += 1
                continue
            if outcome.is_failed:
                result.repos_failed += 1
                continue

            entry = find_contributor(outcome.data, login)
            if entry is None:
                continue
            result.repos_matched += 1
            result.commits_counted += entry.total
            result.loc_changed += entry.lines_changed

        result.items_counted = result.commits_counted
        return result

    async def fetch_outcome(self, repo: RepoRef) -> FetchOutcome[list[ContributorStat]]:
        cache_key = f"contrib:{repo.key}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        outcome = await fetch_with_retry(
            lambda: self._fetch_once(repo),
            max_attempts=self._retry_attempts,
            delays=self._retry_delays,
            sleep=self._sleep,
        )

        if outcome.is_pending:
            self._cache.set(cache_key, outcome, self._pending_ttl_seconds)
            logger.info("Contributor stats still computing", extra=sanitize_log_extra(repo=repo.full_name))
        else:
            self._cache.set(cache_key, outcome, self._ttl_seconds)
            if outcome.is_failed:
                logger.warning(
                    "Contributor stats fetch failed",
                    extra=sanitize_log_extra(repo=repo.full_name, error=outcome.error, status_code=outcome.status_code),
                )
        return outcome

    def prewarm(self, repos: Sequence[RepoRef]) -> None:
        """Ask upstream to start computing statistics without waiting for them.

        One-way notification: the detached tasks' results and errors are
        intentionally discarded.
        """
        for repo in repos:
            task = asyncio.create_task(self._touch(repo))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _touch(self, repo: RepoRef) -> None:
        try:
            await self._client.rest_fetch(self._stats_path(repo))
        except Exception as exc:
            logger.debug("Contributor stats prewarm failed", extra=sanitize_log_extra(repo=repo.full_name, error=str(exc)))

    async def _fetch_once(self, repo: RepoRef) -> FetchOutcome[list[ContributorStat]]:
        try:
            response = await self._client.rest_fetch(self._stats_path(repo))
        except GitHubTransportError as exc:
            return Failed(error=str(exc), status_code=exc.status_code)

        if response.status_code == 202:
            return Pending()
        if response.status_code == 204:
            return Fetched(data=[])
        if not response.is_success:
            return Failed(error=f"HTTP {response.status_code}", status_code=response.status_code)

        stats = parse_contributor_stats(response.body)
        if stats is None:
            return Failed(error="malformed contributor statistics payload", status_code=response.status_code)
        return Fetched(data=stats)

    @staticmethod
    def _stats_path(repo: RepoRef) -> str:
        return f"/repos/{repo.owner}/{repo.name}/stats/contributors"


class PullRequestStrategy:
    """Lines changed across the account's merged pull requests, newest first."""

    def __init__(self, client: GitHubStatsClient) -> None:
        self._client = client

    async def collect(self, login: str, max_prs: int) -> LocResult:
        loc = 0
        scanned = 0
        cursor: Optional[str] = None

        try:
            while scanned < max_prs:
                data = await self._client.graphql(
                    MERGED_PULL_REQUESTS_QUERY,
                    {"login": login, "first": min(GRAPHQL_PAGE_SIZE, max_prs - scanned), "cursor": cursor},
                )
                connection = ((data.get("user") or {}).get("pullRequests")) or {}
                for node in connection.get("nodes") or []:
                    if not isinstance(node, dict):
                        continue
                    loc += int(node.get("additions") or 0) + int(node.get("deletions") or 0)
                    scanned += 1
                    if scanned >= max_prs:
                        break

                page_info = connection.get("pageInfo") or {}
                cursor = page_info.get("endCursor")
                if not page_info.get("hasNextPage") or not cursor:
                    break
        except GitHubTransportError as exc:
            logger.warning(
                "Merged pull request scan failed",
                extra=sanitize_log_extra(login=login, error=str(exc)),
            )
            return LocResult(loc_changed=None)

        return LocResult(loc_changed=loc, items_counted=scanned)


class CommitHistoryStrategy:
    """Lines changed from default-branch commits authored by the account."""

    def __init__(
        self,
        client: GitHubStatsClient,
        cache: TTLCache,
        *,
        concurrency: int = settings.DEFAULT_CONCURRENCY,
        ttl_seconds: float = settings.CACHE_TTL_SECONDS,
    ) -> None:
        self._client = client
        self._cache = cache
        self._concurrency = concurrency
        self._ttl_seconds = ttl_seconds

    async def collect(self, login: str, repos: Sequence[RepoRef], max_commits_per_repo: int) -> LocResult:
        try:
            data = await self._client.graphql(USER_NODE_ID_QUERY, {"login": login})
            user_id = (data.get("user") or {}).get("id")
            if not isinstance(user_id, str) or not user_id:
                raise GraphQLError("GitHub GraphQL error: user node id missing")
        except GitHubTransportError as exc:
            logger.warning(
                "Commit history scan unavailable",
                extra=sanitize_log_extra(login=login, error=str(exc)),
            )
            return LocResult(loc_changed=None)

        outcomes = await run_bounded(
            repos,
            self._concurrency,
            lambda repo: self._walk(repo, user_id, max_commits_per_repo),
        )

        result = LocResult(loc_changed=0, repos_scanned=len(repos))
        for outcome in outcomes:
            if outcome.is_failed:
                result.repos_failed += 1
                continue
            loc, commits = outcome.data
            if commits == 0:
                continue
            result.repos_matched += 1
            result.commits_counted += commits
            result.loc_changed += loc

        result.items_counted = result.commits_counted
        return result

    async def _walk(self, repo: RepoRef, user_id: str, cap: int) -> FetchOutcome[tuple[int, int]]:
        cache_key = f"history:{repo.key}:{user_id}:{cap}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        loc = 0
        commits = 0
        cursor: Optional[str] = None
        try:
            while commits < cap:
                data = await self._client.graphql(
                    COMMIT_HISTORY_QUERY,
                    {
                        "owner": repo.owner,
                        "name": repo.name,
                        "userId": user_id,
                        "first": min(GRAPHQL_PAGE_SIZE, cap - commits),
                        "cursor": cursor,
                    },
                )
                branch = ((data.get("repository") or {}).get("defaultBranchRef")) or {}
                history = (branch.get("target") or {}).get("history")
                if not isinstance(history, dict):
                    break

                for node in history.get("nodes") or []:
                    if not isinstance(node, dict):
                        continue
                    loc += int(node.get("additions") or 0) + int(node.get("deletions") or 0)
                    commits += 1
                    if commits >= cap:
                        break

                page_info = history.get("pageInfo") or {}
                cursor = page_info.get("endCursor")
                if not page_info.get("hasNextPage") or not cursor:
                    break
        except GitHubTransportError as exc:
            logger.warning(
                "Commit history walk failed",
                extra=sanitize_log_extra(repo=repo.full_name, error=str(exc)),
            )
            outcome: FetchOutcome[tuple[int, int]] = Failed(error=str(exc), status_code=exc.status_code)
        else:
            outcome = Fetched(data=(loc, commits))

        self._cache.set(cache_key, outcome, self._ttl_seconds)
        return outcome


class TrafficCollector:
    """14-day view counts; repositories without push access are skipped."""

    def __init__(self, client: GitHubStatsClient, *, concurrency: int = settings.DEFAULT_CONCURRENCY) -> None:
        self._client = client
        self._concurrency = concurrency

    async def collect(self, repos: Sequence[RepoRef]) -> TrafficSummary:
        counts = await run_bounded(repos, self._concurrency, self._views)

        summary = TrafficSummary(attempted=len(repos))
        for count in counts:
            if count is None:
                continue
            summary.total_views += count
            summary.succeeded += 1
        return summary

    async def _views(self, repo: RepoRef) -> Optional[int]:
        try:
            response = await self._client.rest_fetch(f"/repos/{repo.owner}/{repo.name}/traffic/views")
        except GitHubTransportError:
            return None

        if not response.is_success or not isinstance(response.body, dict):
            return None
        count = response.body.get("count")
        if isinstance(count, bool) or not isinstance(count, (int, float)):
            return None
        return int(count)
