from __future__ import annotations

import httpx
import pytest

from roster.errors import NetworkError
from roster.pipeline.fetchers.static import StaticFetcher


class _MockTransport(httpx.BaseTransport):
    def __init__(self, routes: dict[str, tuple[int, dict[str, str], bytes]]):
        self.routes = routes
        self.requested: list[str] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        url = str(request.url)
        self.requested.append(url)
        status, headers, body = self.routes.get(url, (404, {"Content-Type": "text/plain"}, b"Not Found"))
        return httpx.Response(status, headers=headers, content=body, request=request)


HTML_OK = (200, {"Content-Type": "text/html; charset=utf-8"}, b"<html><body>OK</body></html>")
NO_ROBOTS = (404, {"Content-Type": "text/plain"}, b"")


def test_static_fetch_allows_when_no_robots():
    transport = _MockTransport({
        "https://example.com/robots.txt": NO_ROBOTS,
        "https://example.com/team": HTML_OK,
    })
    with StaticFetcher(respect_robots=True, transport=transport) as fetcher:
        res = fetcher.fetch("https://example.com/team")
    assert res.status_code == 200
    assert res.mime == "text/html"
    assert "OK" in res.html
    assert res.content_length > 0


def test_static_fetch_blocks_when_robots_disallow():
    robots = (200, {"Content-Type": "text/plain"}, b"User-agent: *\nDisallow: /secret\n")
    transport = _MockTransport({"https://example.com/robots.txt": robots})
    fetcher = StaticFetcher(respect_robots=True, user_agent="RosterWatch-Test/0.1", transport=transport)

    with pytest.raises(NetworkError) as exc:
        fetcher.fetch("https://example.com/secret")
    assert exc.value.blocked_by_robots is True
    assert "https://example.com/secret" not in transport.requested


def test_robots_ignored_when_disabled():
    transport = _MockTransport({"https://example.com/team": HTML_OK})
    fetcher = StaticFetcher(respect_robots=False, transport=transport)
    fetcher.fetch("https://example.com/team")
    assert transport.requested == ["https://example.com/team"]


def test_http_error_status_raises():
    transport = _MockTransport({
        "https://example.com/robots.txt": NO_ROBOTS,
        "https://example.com/team": (503, {"Content-Type": "text/html"}, b"down"),
    })
    fetcher = StaticFetcher(transport=transport)
    with pytest.raises(NetworkError) as exc:
        fetcher.fetch("https://example.com/team")
    assert exc.value.status_code == 503
    assert exc.value.blocked_by_robots is False


def test_non_html_raises():
    transport = _MockTransport({
        "https://example.com/robots.txt": NO_ROBOTS,
        "https://example.com/team.json": (200, {"Content-Type": "application/json"}, b"{}"),
    })
    fetcher = StaticFetcher(transport=transport)
    with pytest.raises(NetworkError, match="Not an HTML page"):
        fetcher.fetch("https://example.com/team.json")


def test_transport_failure_raises_network_error():
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    fetcher = StaticFetcher(respect_robots=False, transport=httpx.MockTransport(boom))
    with pytest.raises(NetworkError, match="Transport error"):
        fetcher.fetch("https://example.com/team")


def test_timeout_raises_network_error():
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    fetcher = StaticFetcher(respect_robots=False, transport=httpx.MockTransport(slow))
    with pytest.raises(NetworkError, match="Timeout"):
        fetcher.fetch("https://example.com/team")
