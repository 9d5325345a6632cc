import time

import httpx
import pytest

from statcard.crawlers.github import client as client_module
from statcard.crawlers.github.client import GitHubStatsClient, parse_link_header
from statcard.crawlers.github.errors import ConfigurationError, GitHubTransportError, GraphQLError

API = "https://api.github.com"


def _transport_from_sequence(responses: list[httpx.Response], seen: list[httpx.Request] | None = None) -> httpx.MockTransport:
    queue = responses.copy()

    async def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if not queue:
            raise AssertionError("No more mock responses available")
        return queue.pop(0)

    return httpx.MockTransport(handler)


def _next_link(page: int) -> dict[str, str]:
    return {"link": f'<{API}/user/repos?page={page}>; rel="next", <{API}/user/repos?page=9>; rel="last"'}


def test_missing_token_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        GitHubStatsClient(token="  ")


def test_parse_link_header_extracts_relations() -> None:
    links = parse_link_header(
        '<https://api.github.com/user/repos?page=2>; rel="next", <https://api.github.com/user/repos?page=5>; rel="last"'
    )

    assert links == {
        "next": "https://api.github.com/user/repos?page=2",
        "last": "https://api.github.com/user/repos?page=5",
    }
    assert parse_link_header(None) == {}
    assert parse_link_header("garbage") == {}


@pytest.mark.asyncio
async def test_rest_fetch_sends_credential_and_api_headers() -> None:
    seen: list[httpx.Request] = []
    transport = _transport_from_sequence([httpx.Response(200, json={"login": "alice"})], seen)
    client = GitHubStatsClient(token="test-token", transport=transport)

    result = await client.rest_fetch("/user")
    await client.aclose()

    assert result.status_code == 200
    assert result.body == {"login": "alice"}
    request = seen[0]
    assert request.headers["authorization"] == "bearer test-token"
    assert request.headers["accept"] == "application/vnd.github+json"
    assert request.headers["x-github-api-version"] == "2022-11-28"


@pytest.mark.asyncio
async def test_rest_fetch_treats_202_as_absent_body() -> None:
    transport = _transport_from_sequence([httpx.Response(202, content=b"not json at all")])
    client = GitHubStatsClient(token="test", transport=transport)

    result = await client.rest_fetch("/repos/alice/demo/stats/contributors")
    await client.aclose()

    assert result.status_code == 202
    assert result.body is None
    assert result.is_success


@pytest.mark.asyncio
async def test_paginate_stops_when_last_page_has_no_next_link() -> None:
    seen: list[httpx.Request] = []
    transport = _transport_from_sequence(
        [
            httpx.Response(200, headers=_next_link(2), json=[{"id": 1}]),
            httpx.Response(200, headers=_next_link(3), json=[{"id": 2}]),
            httpx.Response(200, json=[{"id": 3}]),
        ],
        seen,
    )
    client = GitHubStatsClient(token="test", transport=transport)

    collection = await client.paginate("/user/repos", params={"per_page": 100}, max_pages=20)
    await client.aclose()

    assert [item["id"] for item in collection.items] == [1, 2, 3]
    assert collection.pages_fetched == 3
    assert collection.complete is True
    assert len(seen) == 3
    assert seen[1].url.params.get("page") == "2"


@pytest.mark.asyncio
async def test_paginate_respects_max_pages() -> None:
    seen: list[httpx.Request] = []
    transport = _transport_from_sequence(
        [httpx.Response(200, headers=_next_link(page + 1), json=[{"id": page}]) for page in range(1, 6)],
        seen,
    )
    client = GitHubStatsClient(token="test", transport=transport)

    collection = await client.paginate("/user/repos", max_pages=2)
    await client.aclose()

    assert collection.pages_fetched == 2
    assert collection.complete is False
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_paginate_truncates_on_failed_page_without_retrying() -> None:
    seen: list[httpx.Request] = []
    transport = _transport_from_sequence(
        [
            httpx.Response(200, headers=_next_link(2), json=[{"id": 1}]),
            httpx.Response(500, json={"message": "boom"}),
        ],
        seen,
    )
    client = GitHubStatsClient(token="test", transport=transport)

    collection = await client.paginate("/user/repos")
    await client.aclose()

    assert collection.items == [{"id": 1}]
    assert collection.complete is False
    assert collection.status_code == 500
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_graphql_raises_on_errors_list_with_200() -> None:
    transport = _transport_from_sequence(
        [
            httpx.Response(
                200,
                json={"data": None, "errors": [{"message": "first problem"}, {"message": "second problem"}]},
            )
        ]
    )
    client = GitHubStatsClient(token="test", transport=transport)

    with pytest.raises(GraphQLError) as excinfo:
        await client.graphql("query { viewer { login } }", {})
    await client.aclose()

    assert "first problem; second problem" in str(excinfo.value)
    assert excinfo.value.status_code == 200


@pytest.mark.asyncio
async def test_graphql_uses_status_text_when_no_error_messages() -> None:
    transport = _transport_from_sequence([httpx.Response(502, content=b"<html>upstream</html>")])
    client = GitHubStatsClient(token="test", transport=transport)

    with pytest.raises(GraphQLError) as excinfo:
        await client.graphql("query { viewer { login } }", {})
    await client.aclose()

    assert "Bad Gateway" in str(excinfo.value)
    assert isinstance(excinfo.value, GitHubTransportError)


@pytest.mark.asyncio
async def test_graphql_posts_query_and_variables() -> None:
    seen: list[httpx.Request] = []
    transport = _transport_from_sequence([httpx.Response(200, json={"data": {"user": {"id": "U_1"}}})], seen)
    client = GitHubStatsClient(token="test", transport=transport)

    data = await client.graphql("query($login: String!) { user(login: $login) { id } }", {"login": "alice"})
    await client.aclose()

    assert data == {"user": {"id": "U_1"}}
    assert seen[0].method == "POST"
    assert seen[0].url == httpx.URL("https://api.github.com/graphql")
    assert b'"login":"alice"' in seen[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_network_failure_becomes_transport_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = GitHubStatsClient(token="test", transport=httpx.MockTransport(handler))

    with pytest.raises(GitHubTransportError):
        await client.rest_fetch("/user")
    await client.aclose()


@pytest.mark.asyncio
async def test_get_viewer_login_fails_on_bad_credentials() -> None:
    transport = _transport_from_sequence([httpx.Response(401, json={"message": "Bad credentials"})])
    client = GitHubStatsClient(token="test", transport=transport)

    with pytest.raises(GitHubTransportError) as excinfo:
        await client.get_viewer_login()
    await client.aclose()

    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,headers",
    [
        (429, {"retry-after": "0"}),
        (403, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(int(time.time()))}),
    ],
)
async def test_rate_limited_responses_retry_then_succeed(
    monkeypatch: pytest.MonkeyPatch, status_code: int, headers: dict[str, str]
) -> None:
    attempts: list[int] = []

    async def handler(_: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(status_code, headers=headers)
        return httpx.Response(200, json={"login": "alice"})

    async def fast_sleep(_: float) -> None:
        return None

    client = GitHubStatsClient(
        token="test",
        transport=httpx.MockTransport(handler),
        max_retries=3,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.01,
        rate_limit_buffer_seconds=0,
    )

    monkeypatch.setattr(client_module.asyncio, "sleep", fast_sleep)
    try:
        result = await client.rest_fetch("/user")
    finally:
        await client.aclose()

    assert result.status_code == 200
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_returns_last_response() -> None:
    transport = _transport_from_sequence(
        [
            httpx.Response(429, headers={"retry-after": "0"}),
            httpx.Response(429, headers={"retry-after": "0"}),
        ]
    )
    client = GitHubStatsClient(token="test", transport=transport, max_retries=2, backoff_max_seconds=0)

    result = await client.rest_fetch("/user")
    await client.aclose()

    assert result.status_code == 429
    assert not result.is_success
