"""Async GitHub REST + GraphQL client used by the statistics aggregator."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Optional

import httpx

from statcard.config.settings import settings
from statcard.crawlers.github.contracts import PageCollection, RestResponse
from statcard.crawlers.github.errors import ConfigurationError, GitHubTransportError, GraphQLError

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

_SENSITIVE_KEY_PARTS = ("authorization", "token", "api_key", "apikey", "secret", "session", "password", "cookie")
_PAYLOAD_KEYS = {"body", "content", "payload"}
_INLINE_SECRET_PATTERNS = (
    (re.compile(r"(?i)\bbearer\s+[^\s,;]+"), f"Bearer {REDACTED}"),
    (re.compile(r"(?i)\b(access_token|token|api_key|key)=([^&\s,;]+)"), rf"\1={REDACTED}"),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9_]+"), REDACTED),
)


def sanitize_for_log(value: Any, key: Optional[str] = None) -> Any:
    """Mask credentials and bulky payloads before they reach log records."""
    lowered = (key or "").lower()
    if lowered and any(part in lowered for part in _SENSITIVE_KEY_PARTS):
        return REDACTED

    if isinstance(value, dict):
        return {item_key: sanitize_for_log(item, key=str(item_key)) for item_key, item in value.items()}

    if isinstance(value, (list, tuple)):
        return [sanitize_for_log(item) for item in value]

    if isinstance(value, str):
        if lowered in _PAYLOAD_KEYS:
            return f"<redacted payload len={len(value)}>"
        text = value
        for pattern, replacement in _INLINE_SECRET_PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    return value


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    return {key: sanitize_for_log(value, key=key) for key, value in fields.items()}


def parse_link_header(value: Optional[str]) -> dict[str, str]:
    """Parse `<url>; rel="next", <url>; rel="last"` into {rel: url}."""
    links: dict[str, str] = {}
    if not value:
        return links

    for entry in value.split(","):
        segments = entry.strip().split(";")
        target = segments[0].strip()
        if not (target.startswith("<") and target.endswith(">")):
            continue
        for param in segments[1:]:
            name, _, raw = param.strip().partition("=")
            if name.strip().lower() != "rel":
                continue
            for rel in raw.strip().strip('"').split():
                links.setdefault(rel, target[1:-1])
    return links


class GitHubStatsClient:
    """Thin async wrapper over the REST and GraphQL endpoints.

    Every request carries the bearer credential. Rate-limited responses
    (429, or 403 with an exhausted quota) are retried up to ``max_retries``
    total attempts; everything else is handed back to the caller, which
    decides whether a failure degrades or aborts.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: str = settings.GITHUB_API_URL,
        graphql_url: str = settings.GITHUB_GRAPHQL_URL,
        api_version: str = settings.GITHUB_API_VERSION,
        user_agent: str = settings.USER_AGENT,
        timeout_seconds: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = settings.HTTP_MAX_RETRIES,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = settings.RATE_LIMIT_BACKOFF_MAX_SECONDS,
        rate_limit_buffer_seconds: float = 1.0,
    ) -> None:
        resolved_token = (token if token is not None else settings.GITHUB_TOKEN) or ""
        if not resolved_token.strip():
            raise ConfigurationError("Missing GITHUB_TOKEN env var")

        self._graphql_url = graphql_url
        self._max_retries = max(int(max_retries), 1)
        self._backoff_base_seconds = backoff_base_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._rate_limit_buffer_seconds = rate_limit_buffer_seconds
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"bearer {resolved_token.strip()}",
                "X-GitHub-Api-Version": api_version,
                "User-Agent": user_agent,
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubStatsClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def rest_fetch(self, path: str, params: Optional[dict[str, Any]] = None) -> RestResponse:
        """GET a REST path (or absolute URL). Callers branch on status before touching the body."""
        response = await self._request(path, params=params)

        body: Any = None
        if response.status_code not in (202, 204) and response.content:
            try:
                body = response.json()
            except ValueError:
                body = None

        return RestResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=body,
            reason=response.reason_phrase,
        )

    async def paginate(
        self,
        first_path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        max_pages: int = settings.DISCOVERY_MAX_PAGES,
    ) -> PageCollection:
        """Follow rel="next" links, accumulating list bodies. Never retries a failed page."""
        collection = PageCollection()
        url: Optional[str] = first_path
        page_params = params

        while url is not None and collection.pages_fetched < max_pages:
            try:
                response = await self.rest_fetch(url, params=page_params)
            except GitHubTransportError as exc:
                collection.complete = False
                collection.error = str(exc)
                break

            if not response.is_success or not isinstance(response.body, list):
                collection.complete = False
                collection.status_code = response.status_code
                collection.error = f"HTTP {response.status_code} while paginating"
                break

            collection.items.extend(response.body)
            collection.pages_fetched += 1
            url = parse_link_header(response.headers.get("link")).get("next")
            page_params = None
        else:
            if url is not None:
                collection.complete = False
                collection.error = f"stopped after {max_pages} pages"

        if not collection.complete:
            logger.warning(
                "GitHub pagination truncated",
                extra=sanitize_log_extra(
                    url=first_path,
                    pages_fetched=collection.pages_fetched,
                    error=collection.error,
                ),
            )
        return collection

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST a query; raise GraphQLError on non-2xx OR a non-empty `errors` list."""
        try:
            response = await self._request(
                self._graphql_url,
                method="POST",
                json={"query": query, "variables": variables},
            )
        except GitHubTransportError as exc:
            raise GraphQLError(f"GitHub GraphQL error: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if not response.is_success or errors:
            messages = [
                str(error.get("message"))
                for error in (errors or [])
                if isinstance(error, dict) and error.get("message")
            ]
            message = "; ".join(messages) or response.reason_phrase or f"HTTP {response.status_code}"
            logger.warning(
                "GitHub GraphQL request failed",
                extra=sanitize_log_extra(status_code=response.status_code, error=message),
            )
            raise GraphQLError(f"GitHub GraphQL error: {message}", status_code=response.status_code)

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise GraphQLError("GitHub GraphQL error: response carried no data", status_code=response.status_code)
        return data

    async def get_viewer_login(self) -> str:
        """Login of the account owning the credential."""
        response = await self.rest_fetch("/user")
        if not response.is_success:
            raise GitHubTransportError(
                f"Failed to resolve token owner: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        login = response.body.get("login") if isinstance(response.body, dict) else None
        if not isinstance(login, str) or not login:
            raise GitHubTransportError("Failed to resolve token owner: malformed /user payload")
        return login

    async def _request(
        self,
        path: str,
        *,
        method: str = "GET",
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._client.request(method, path, params=params, json=json)
            except httpx.HTTPError as exc:
                logger.warning(
                    "GitHub request failed",
                    extra=sanitize_log_extra(url=path, error=str(exc)),
                )
                raise GitHubTransportError(f"Request to {sanitize_for_log(path)} failed: {exc}") from exc

            if self._is_rate_limited(response) and attempt < self._max_retries:
                delay = self._rate_limit_delay(response, attempt)
                logger.warning(
                    "GitHub rate limit hit, backing off",
                    extra=sanitize_log_extra(url=str(response.request.url), attempt=attempt, delay=delay),
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                logger.warning(
                    "GitHub request failed",
                    extra=sanitize_log_extra(url=str(response.request.url), status_code=response.status_code),
                )
            return response

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"

    def _rate_limit_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("retry-after")
        reset = response.headers.get("x-ratelimit-reset")
        if retry_after and retry_after.strip().isdigit():
            delay = float(retry_after)
        elif reset and reset.strip().isdigit():
            delay = int(reset) - time.time() + self._rate_limit_buffer_seconds
        else:
            delay = self._backoff_base_seconds * (2 ** (attempt - 1))
        return min(max(delay, 0.0), self._backoff_max_seconds)
