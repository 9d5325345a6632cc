"""Error taxonomy for statistics aggregation."""

from __future__ import annotations

from typing import Optional


class StatCardError(Exception):
    """Base class for aggregation failures surfaced to the caller."""


class ConfigurationError(StatCardError):
    """Required configuration (the GitHub credential) is missing."""


class IdentityMismatchError(StatCardError):
    """The credential belongs to a different account than the one requested."""

    def __init__(self, requested: str, actual: str) -> None:
        super().__init__(
            f"Token belongs to '{actual}', refusing to compute statistics for '{requested}'"
        )
        self.requested = requested
        self.actual = actual


class GitHubTransportError(StatCardError):
    """Network failure or non-success status with no defined degradation."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GraphQLError(GitHubTransportError):
    """GraphQL endpoint returned a non-2xx status or an `errors` list."""
