"""GitHub transport, contracts and repository discovery."""

from statcard.crawlers.github.client import GitHubStatsClient
from statcard.crawlers.github.contracts import (
    AggregateStatistics,
    ContributorStat,
    Failed,
    FetchOutcome,
    FetchState,
    Fetched,
    LocStrategy,
    Pending,
    RepoRef,
    StatisticsOptions,
    TrafficSummary,
)
from statcard.crawlers.github.errors import (
    ConfigurationError,
    GitHubTransportError,
    GraphQLError,
    IdentityMismatchError,
    StatCardError,
)

__all__ = [
    "GitHubStatsClient",
    "AggregateStatistics",
    "ContributorStat",
    "FetchState",
    "FetchOutcome",
    "Fetched",
    "Pending",
    "Failed",
    "LocStrategy",
    "RepoRef",
    "StatisticsOptions",
    "TrafficSummary",
    "StatCardError",
    "ConfigurationError",
    "IdentityMismatchError",
    "GitHubTransportError",
    "GraphQLError",
]
