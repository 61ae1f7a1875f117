from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib import robotparser
from urllib.parse import urlparse

import httpx

from ...errors import NetworkError


DEFAULT_UA = "RosterWatch-StaticFetcher/0.1 (+https://example.com)"


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    mime: str | None
    content_length: int
    html: str | None
    headers: dict[str, str]


class StaticFetcher:
    """Static-first HTML fetcher with optional robots.txt enforcement.

    - Uses httpx for network IO
    - Parses robots.txt using urllib.robotparser
    - Does NOT execute JavaScript
    - Raises NetworkError for robots denial, transport errors,
      HTTP status >= 400 and non-HTML responses
    """

    def __init__(
        self,
        *,
        timeout_s: float = 12.0,
        user_agent: str = DEFAULT_UA,
        respect_robots: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self.respect_robots = respect_robots
        self._client = httpx.Client(
            timeout=self.timeout_s,
            headers={"User-Agent": self.user_agent},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StaticFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _robots_allows(self, url: str) -> bool:
        if not self.respect_robots:
            return True
        parsed = urlparse(url)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        try:
            resp = self._client.get(robots_url)
        except httpx.HTTPError:
            # Unreachable robots.txt means no restrictions
            return True
        if resp.status_code >= 400:
            return True
        rp = robotparser.RobotFileParser()
        rp.parse(resp.text.splitlines())
        # Try with our UA, else fallback to '*'
        return rp.can_fetch(self.user_agent, url) and rp.can_fetch("*", url)

    def fetch(self, url: str) -> FetchResult:
        if not self._robots_allows(url):
            raise NetworkError(f"Blocked by robots.txt: {url}", url=url, blocked_by_robots=True)
        try:
            resp = self._client.get(url, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timeout fetching {url}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Transport error fetching {url}: {e}", url=url) from e
        if resp.status_code >= 400:
            raise NetworkError(f"HTTP {resp.status_code}", url=url, status_code=resp.status_code)
        mime = resp.headers.get("Content-Type")
        mime_main = None
        if mime:
            mime_main = mime.split(";")[0].strip().lower()
        if mime_main not in ("text/html", "application/xhtml+xml"):
            raise NetworkError(f"Not an HTML page (mime={mime_main})", url=url, status_code=resp.status_code)
        return FetchResult(
            url=str(resp.request.url),
            status_code=resp.status_code,
            mime=mime_main,
            content_length=len(resp.content or b""),
            html=resp.text,
            headers={k: v for k, v in resp.headers.items()},
        )
