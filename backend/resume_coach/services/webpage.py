"""Fetch a web page and reduce it to its visible text."""
from __future__ import annotations

import asyncio
import re
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
from bs4 import BeautifulSoup

from resume_coach import config
from resume_coach.log import get_logger
from resume_coach.services.parse import is_public_address, is_public_host

log = get_logger(__name__)

_NOISE_TAGS = ["script", "style", "noscript", "svg", "nav", "footer", "header", "form"]

Resolver = Callable[[str, int], Awaitable[List[str]]]


class FetchError(RuntimeError):
    pass


@dataclass
class FetchedPage:
    url: str
    text: str


def _clean_line(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def extract_visible_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    main = soup.find("main") or soup.find("article") or soup.body
    text = main.get_text(separator="\n") if main else soup.get_text(separator="\n")

    lines: List[str] = []
    seen = set()
    for raw in text.split("\n"):
        line = _clean_line(raw)
        if len(line) < 3:
            continue
        key = line.lower()
        if key in seen:
            continue
        seen.add(key)
        lines.append(line)
    return "\n".join(lines)


def _decode(body: bytes, charset: Optional[str]) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


async def resolve_host(host: str, port: int) -> List[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


class PageFetcher:
    """GET a public web page with redirects followed hop by hop.

    Every hop is resolved first and refused when any address is loopback,
    private, link-local or otherwise non-public. The body is streamed and cut
    at ``max_bytes``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        max_chars: int = config.FETCH_MAX_CHARS,
        max_bytes: int = config.FETCH_MAX_BYTES,
        max_redirects: int = config.FETCH_MAX_REDIRECTS,
        resolver: Optional[Resolver] = None,
    ):
        self._client = client
        self.timeout = timeout
        self.max_chars = max_chars
        self.max_bytes = max_bytes
        self.max_redirects = max_redirects
        self.resolver = resolver or resolve_host

    async def _check_destination(self, url: httpx.URL) -> None:
        if url.scheme not in {"http", "https"}:
            raise FetchError(f"Refusing to fetch {url}: unsupported scheme")
        host = url.host
        if not is_public_host(host):
            raise FetchError(f"Refusing to fetch {url}: not a public address")
        port = url.port or (443 if url.scheme == "https" else 80)
        try:
            addresses = await self.resolver(host, port)
        except OSError as e:
            raise FetchError(f"Could not resolve {host}: {e}") from e
        if not addresses or not all(is_public_address(a) for a in addresses):
            log.warning("Refusing %s: %s resolves to %s", url, host, addresses)
            raise FetchError(f"Refusing to fetch {url}: not a public address")

    async def _read(self, client: httpx.AsyncClient, url: httpx.URL) -> Tuple[httpx.Response, bytes]:
        async with client.stream("GET", url, follow_redirects=False) as response:
            if response.is_redirect:
                return response, b""
            response.raise_for_status()
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= self.max_bytes:
                    log.info("Truncating %s at %d bytes", url, self.max_bytes)
                    break
            return response, bytes(body[: self.max_bytes])

    async def _get(self, client: httpx.AsyncClient, url: str) -> Tuple[httpx.Response, bytes]:
        target = httpx.URL(url)
        for _ in range(self.max_redirects + 1):
            await self._check_destination(target)
            response, body = await self._read(client, target)
            if not response.is_redirect:
                return response, body
            target = response.url.join(response.headers["location"])
        raise FetchError(f"Too many redirects fetching {url}")

    async def fetch(self, url: str) -> FetchedPage:
        try:
            if self._client is not None:
                response, body = await self._get(self._client, url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response, body = await self._get(client, url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("Fetching %s failed: %s", url, e)
            raise FetchError(f"Could not fetch {url}: {e}") from e

        content_type = response.headers.get("content-type", "")
        raw = _decode(body, response.charset_encoding)
        if "html" in content_type or not content_type:
            text = extract_visible_text(raw)
        elif content_type.startswith("text/"):
            text = raw.strip()
        else:
            raise FetchError(f"Unsupported content type at {url}: {content_type}")

        if not text:
            raise FetchError(f"No readable text found at {url}")

        log.info("Fetched %s (%d chars)", response.url, len(text))
        return FetchedPage(url=str(response.url), text=text[: self.max_chars])
