"""Typed contracts for GitHub statistics client responses."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Generic, Optional, TypeVar, Union

from statcard.config.settings import settings


T = TypeVar("T")


class FetchState(str, Enum):
    """Normalized per-repository outcome for downstream aggregation."""

    OK = "ok"
    PENDING = "pending"
    FAILED = "failed"


class _OutcomeFlags:
    state: ClassVar[FetchState]

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_pending(self) -> bool:
        return self.state == FetchState.PENDING

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED


@dataclass(frozen=True, slots=True)
class Fetched(_OutcomeFlags, Generic[T]):
    """Upstream served the payload."""

    state: ClassVar[FetchState] = FetchState.OK
    data: T


@dataclass(frozen=True, slots=True)
class Pending(_OutcomeFlags):
    """Upstream is still computing the statistic (HTTP 202)."""

    state: ClassVar[FetchState] = FetchState.PENDING


@dataclass(frozen=True, slots=True)
class Failed(_OutcomeFlags):
    """Non-success response, transport error or malformed payload."""

    state: ClassVar[FetchState] = FetchState.FAILED
    error: str
    status_code: Optional[int] = None


FetchOutcome = Union[Fetched[T], Pending, Failed]


@dataclass(slots=True)
class RestResponse:
    """Raw REST response; body is None for 202/204 or undecodable payloads."""

    status_code: int
    headers: dict[str, str]
    body: Any = None
    reason: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(slots=True)
class PageCollection:
    """Items accumulated across Link-header pages."""

    items: list[Any] = field(default_factory=list)
    pages_fetched: int = 0
    complete: bool = True
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(slots=True)
class RepoRef:
    """Repository reference with optional listing metadata."""

    owner: str
    name: str
    stars: int = 0
    forks: int = 0
    is_fork: bool = False
    is_private: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def key(self) -> str:
        return self.full_name.lower()

    @classmethod
    def from_full_name(cls, full_name: str, **metadata: Any) -> "RepoRef":
        owner, name = full_name.split("/", 1)
        return cls(owner=owner.strip(), name=name.strip(), **metadata)


@dataclass(frozen=True, slots=True)
class WeeklyBucket:
    additions: int = 0
    deletions: int = 0
    commits: int = 0


@dataclass(frozen=True, slots=True)
class ContributorStat:
    """One author's commit/line breakdown for a repository."""

    login: Optional[str]
    total: int
    weeks: tuple[WeeklyBucket, ...] = ()

    @property
    def lines_changed(self) -> int:
        return sum(week.additions + week.deletions for week in self.weeks)


class LocStrategy(str, Enum):
    """Source used for the lines-of-code-changed figure."""

    CONTRIBUTOR_STATS = "contributor_stats"
    PULL_REQUESTS = "pull_requests"
    COMMIT_HISTORY = "commit_history"


@dataclass(slots=True)
class StatisticsOptions:
    """Caller-selectable knobs for one aggregation request."""

    repos_limit: int = settings.DEFAULT_REPOS_LIMIT
    include_forks: bool = False
    concurrency: int = settings.DEFAULT_CONCURRENCY
    include_traffic: bool = False
    loc_strategy: LocStrategy = LocStrategy(settings.DEFAULT_LOC_STRATEGY)
    max_prs: int = settings.DEFAULT_MAX_PRS
    max_commits_per_repo: int = settings.DEFAULT_MAX_COMMITS_PER_REPO
    include_contributed: bool = True
    prewarm: bool = False

    def cache_key(self, login: str) -> str:
        return (
            f"stats:{login.lower()}:{self.repos_limit}:{self.include_forks}"
            f":{self.loc_strategy.value}:{self.include_traffic}:{self.include_contributed}"
            f":{self.max_prs}:{self.max_commits_per_repo}"
        )


@dataclass(slots=True)
class TrafficSummary:
    total_views: int = 0
    attempted: int = 0
    succeeded: int = 0


@dataclass(slots=True)
class AggregateStatistics:
    """Final statistics record handed to the renderer."""

    login: str
    stars: int
    forks: int
    contributions_all_time: Optional[int]
    loc_changed: Optional[int]
    loc_strategy: LocStrategy
    loc_items_counted: int = 0
    commits_counted: int = 0
    repos_scanned: int = 0
    repos_matched: int = 0
    repos_pending: int = 0
    repos_failed: int = 0
    repos_owned: int = 0
    repos_contributed_to: Optional[int] = None
    traffic: Optional[TrafficSummary] = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["loc_strategy"] = self.loc_strategy.value
        return payload
