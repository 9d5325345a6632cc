"""Statistics aggregator: the single entry point behind the stats card."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from statcard.config.settings import settings
from statcard.crawlers.github.client import GitHubStatsClient, sanitize_log_extra
from statcard.crawlers.github.contracts import AggregateStatistics, LocStrategy, RepoRef, StatisticsOptions
from statcard.crawlers.github.discovery import RepositoryDiscovery
from statcard.crawlers.github.errors import IdentityMismatchError
from statcard.services.cache import TTLCache
from statcard.services.contributions import (
    AllTimeContributions,
    CommitHistoryStrategy,
    ContributorStatsStrategy,
    LocResult,
    PullRequestStrategy,
    TrafficCollector,
)
from statcard.utils.helpers import utc_now

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    """Folds discovery, contribution and traffic data into one record.

    The client is owned by the caller; the cache is injected so its lifetime
    (and clock) stays under the caller's control.
    """

    def __init__(
        self,
        client: GitHubStatsClient,
        *,
        cache: Optional[TTLCache] = None,
        ttl_seconds: float = settings.CACHE_TTL_SECONDS,
        pending_ttl_seconds: float = settings.PENDING_CACHE_TTL_SECONDS,
        decisive_threshold: float = settings.CACHE_DECISIVE_THRESHOLD,
        retry_attempts: int = settings.STATS_RETRY_ATTEMPTS,
        retry_delays: Sequence[float] = settings.STATS_RETRY_DELAYS,
        discovery_max_pages: int = settings.DISCOVERY_MAX_PAGES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._cache = cache if cache is not None else TTLCache()
        self._ttl_seconds = ttl_seconds
        self._pending_ttl_seconds = pending_ttl_seconds
        self._decisive_threshold = decisive_threshold
        self._retry_attempts = retry_attempts
        self._retry_delays = tuple(retry_delays)
        self._discovery = RepositoryDiscovery(client, max_pages=discovery_max_pages)
        self._sleep = sleep
        self._now = now

    async def get_statistics(self, login: str, options: Optional[StatisticsOptions] = None) -> AggregateStatistics:
        options = options or StatisticsOptions()
        login = login.strip()

        cache_key = options.cache_key(login)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Aggregate statistics served from cache", extra=sanitize_log_extra(login=login))
            return cached

        await self._verify_identity(login)

        all_time = AllTimeContributions(
            self._client,
            self._cache,
            concurrency=options.concurrency,
            ttl_seconds=self._ttl_seconds,
            now=self._now,
        )
        discovery, contributions_all_time = await asyncio.gather(
            self._discovery.discover(login, options),
            all_time.compute(login),
        )

        loc = await self._collect_loc(login, discovery.candidates, discovery.overflow, options)

        traffic = None
        if options.include_traffic:
            traffic = await TrafficCollector(self._client, concurrency=options.concurrency).collect(
                discovery.candidates
            )

        stats = AggregateStatistics(
            login=login,
            stars=discovery.stars,
            forks=discovery.forks,
            contributions_all_time=contributions_all_time,
            loc_changed=loc.loc_changed,
            loc_strategy=options.loc_strategy,
            loc_items_counted=loc.items_counted,
            commits_counted=loc.commits_counted,
            repos_scanned=loc.repos_scanned,
            repos_matched=loc.repos_matched,
            repos_pending=loc.repos_pending,
            repos_failed=loc.repos_failed,
            repos_owned=len(discovery.owned),
            repos_contributed_to=discovery.contributed_total,
            traffic=traffic,
        )

        if self._is_cacheable(stats):
            self._cache.set(cache_key, stats, self._ttl_seconds)
        else:
            logger.info(
                "Aggregate statistics not cached, too many repositories still computing",
                extra=sanitize_log_extra(
                    login=login,
                    repos_scanned=stats.repos_scanned,
                    repos_pending=stats.repos_pending,
                ),
            )

        logger.info(
            "Aggregate statistics computed",
            extra=sanitize_log_extra(
                login=login,
                loc_strategy=options.loc_strategy.value,
                repos_scanned=stats.repos_scanned,
                repos_matched=stats.repos_matched,
                repos_pending=stats.repos_pending,
                repos_failed=stats.repos_failed,
            ),
        )
        return stats

    async def _verify_identity(self, login: str) -> None:
        owner = await self._client.get_viewer_login()
        if owner.casefold() != login.casefold():
            raise IdentityMismatchError(requested=login, actual=owner)

    async def _collect_loc(
        self,
        login: str,
        candidates: list[RepoRef],
        overflow: list[RepoRef],
        options: StatisticsOptions,
    ) -> LocResult:
        if options.loc_strategy == LocStrategy.PULL_REQUESTS:
            return await PullRequestStrategy(self._client).collect(login, options.max_prs)

        if options.loc_strategy == LocStrategy.COMMIT_HISTORY:
            strategy = CommitHistoryStrategy(
                self._client,
                self._cache,
                concurrency=options.concurrency,
                ttl_seconds=self._ttl_seconds,
            )
            return await strategy.collect(login, candidates, options.max_commits_per_repo)

        strategy = ContributorStatsStrategy(
            self._client,
            self._cache,
            concurrency=options.concurrency,
            retry_attempts=self._retry_attempts,
            retry_delays=self._retry_delays,
            ttl_seconds=self._ttl_seconds,
            pending_ttl_seconds=self._pending_ttl_seconds,
            sleep=self._sleep,
        )
        if options.prewarm:
            strategy.prewarm(overflow)
        return await strategy.collect(login, candidates)

    def _is_cacheable(self, stats: AggregateStatistics) -> bool:
        if stats.repos_scanned == 0:
            return True
        decisive = stats.repos_matched + stats.repos_failed
        return decisive / stats.repos_scanned > self._decisive_threshold


async def get_statistics(
    login: str,
    options: Optional[StatisticsOptions] = None,
    *,
    token: Optional[str] = None,
    cache: Optional[TTLCache] = None,
    client_factory: Callable[..., GitHubStatsClient] = GitHubStatsClient,
) -> AggregateStatistics:
    """Resolve the credential, open a client and aggregate statistics for ``login``.

    Raises ConfigurationError before any request when no credential is configured.
    """
    async with client_factory(token) as client:
        aggregator = StatisticsAggregator(client, cache=cache)
        return await aggregator.get_statistics(login, options)
