"""AWS Lambda entry point serving the stats card over API Gateway."""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Optional
from urllib.parse import urlencode

from statcard.config.settings import settings
from statcard.crawlers.github.client import sanitize_for_log
from statcard.crawlers.github.contracts import LocStrategy, StatisticsOptions
from statcard.crawlers.github.errors import ConfigurationError, GitHubTransportError, IdentityMismatchError
from statcard.services.aggregator import get_statistics
from statcard.services.cache import TTLCache
from statcard.services.card_renderer import render_statistics_card
from statcard.utils.helpers import escape_xml, parse_bool, parse_non_negative_int
from statcard.utils.logger import setup_logger

logger = setup_logger("statcard", settings.LOG_LEVEL)

# Process-scoped: survives warm invocations of the same Lambda container
_CACHE = TTLCache()

SVG_CACHE_CONTROL = "public, max-age=3600, s-maxage=21600, stale-while-revalidate=43200"

LOC_STRATEGY_ALIASES = {
    "prs": LocStrategy.PULL_REQUESTS,
    "commits": LocStrategy.COMMIT_HISTORY,
    "contributors": LocStrategy.CONTRIBUTOR_STATS,
}


def parse_options(params: dict[str, Any]) -> StatisticsOptions:
    """
    Build aggregation options from query-string parameters

    Args:
        params: API Gateway queryStringParameters

    Returns:
        StatisticsOptions with defaults for missing or invalid numbers

    Raises:
        ValueError: Unknown loc_strategy value
    """
    defaults = StatisticsOptions()
    return StatisticsOptions(
        repos_limit=parse_non_negative_int(params.get("repos_limit"), defaults.repos_limit),
        include_forks=parse_bool(params.get("include_forks")),
        concurrency=max(parse_non_negative_int(params.get("concurrency"), defaults.concurrency), 1),
        include_traffic=parse_bool(params.get("include_traffic")),
        loc_strategy=parse_loc_strategy(params.get("loc_strategy"), defaults.loc_strategy),
        max_prs=parse_non_negative_int(params.get("max_prs"), defaults.max_prs),
        max_commits_per_repo=parse_non_negative_int(
            params.get("max_commits_per_repo"), defaults.max_commits_per_repo
        ),
        include_contributed=parse_bool(params.get("include_contributed"), default=True),
        prewarm=parse_bool(params.get("prewarm")),
    )


def parse_loc_strategy(value: Optional[str], default: LocStrategy) -> LocStrategy:
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in LOC_STRATEGY_ALIASES:
        return LOC_STRATEGY_ALIASES[normalized]
    return LocStrategy(normalized)


def lambda_handler(event: dict[str, Any], context: Any, *, cache: Optional[TTLCache] = None) -> dict[str, Any]:
    """
    Render the stats card for ?username=

    Args:
        event: API Gateway proxy event
        context: Lambda context (unused)
        cache: Cache override, defaults to the process-scoped cache

    Returns:
        API Gateway proxy response
    """
    params = event.get("queryStringParameters") or {}
    headers = {str(key).lower(): str(value) for key, value in (event.get("headers") or {}).items()}

    username = str(params.get("username") or "").strip()
    if not username:
        return _response(400, "Missing ?username=")

    if "text/html" in headers.get("accept", "") and not parse_bool(params.get("raw")):
        return _response(200, _html_wrapper(event, params, username), "text/html; charset=utf-8", "no-store")

    try:
        options = parse_options(params)
    except ValueError:
        return _response(400, f"Unknown loc_strategy: {params.get('loc_strategy')}")

    try:
        stats = asyncio.run(get_statistics(username, options, cache=cache if cache is not None else _CACHE))
    except ConfigurationError as exc:
        logger.error("Stats card misconfigured", extra={"error": str(exc)})
        return _response(500, str(exc))
    except IdentityMismatchError as exc:
        logger.warning("Stats card requested for foreign account", extra={"requested": exc.requested})
        return _response(403, str(exc))
    except GitHubTransportError as exc:
        logger.error("Stats card aggregation failed", extra={"error": sanitize_for_log(str(exc))})
        return _response(502, sanitize_for_log(str(exc)))
    except Exception as exc:
        logger.exception("Stats card crashed", extra={"error": sanitize_for_log(str(exc))})
        return _response(500, sanitize_for_log(str(exc)) or "Server error")

    svg = render_statistics_card(stats)
    response = _response(200, svg, "image/svg+xml; charset=utf-8", SVG_CACHE_CONTROL)
    response["headers"]["ETag"] = f'"{hashlib.sha256(svg.encode("utf-8")).hexdigest()[:16]}"'
    return response


def _html_wrapper(event: dict[str, Any], params: dict[str, Any], username: str) -> str:
    path = event.get("rawPath") or event.get("path") or "/"
    image_url = f"{path}?{urlencode({**params, 'raw': 'true'})}"
    return (
        "<!doctype html>\n<html>\n<head>\n"
        '  <meta charset="utf-8" />\n'
        f"  <title>{escape_xml(username)}'s GitHub Stats</title>\n"
        "  <style>body { margin:0; min-height:100vh; display:grid; place-items:center; background:#0d1117; }"
        " img { max-width: 95vw; height:auto; }</style>\n"
        "</head>\n<body>\n"
        f'  <img src="{escape_xml(image_url)}" alt="GitHub Stats" />\n'
        "</body>\n</html>"
    )


def _response(
    status_code: int,
    body: str,
    content_type: str = "text/plain; charset=utf-8",
    cache_control: str = "no-store",
) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": content_type, "Cache-Control": cache_control},
        "body": body,
    }
