"""Website import.

Fetches a public web page and extracts the text, title and illustrations the
web app turns into study notes.

Only http(s) URLs whose host resolves exclusively to public addresses are
fetched. Redirects are followed by hand so every hop passes the same check,
and the body is read up to SCRAPE_MAX_BYTES.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx

from notecraft.config import (
    SCRAPE_MAX_BYTES,
    SCRAPE_MAX_CHARS,
    SCRAPE_MAX_IMAGES,
    SCRAPE_MAX_REDIRECTS,
    SCRAPE_MIN_CHARS,
    SCRAPE_TIMEOUT_SECONDS,
    SCRAPE_USER_AGENT,
)
from notecraft.errors import WebsiteFetchError
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter
from notecraft.utils.html import extract_images, extract_title, html_to_text, parse_html

logger = get_logger(__name__)

Resolver = Callable[[str], Awaitable[list[str]]]

INVALID_URL_MESSAGE = "Invalid URL provided"
INSUFFICIENT_CONTENT_MESSAGE = (
    "Could not extract sufficient content from this website. "
    "It may require authentication or be JavaScript-heavy."
)

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


async def resolve_host(host: str) -> list[str]:
    """All addresses the host resolves to (A and AAAA)."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def is_public_address(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    # is_global excludes private, loopback, link-local, reserved and shared ranges
    return ip.is_global and not ip.is_multicast


@dataclass
class ScrapedPage:
    url: str
    title: str
    content: str
    images: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "content": self.content,
            # Same text under the key the study-pack endpoint reads
            "text": self.content,
            "title": self.title,
            "url": self.url,
            "images": self.images,
        }


class WebsiteFetcher:
    """Fetch and extract one public web page per call."""

    def __init__(
        self,
        *,
        resolver: Resolver = resolve_host,
        timeout_seconds: float = SCRAPE_TIMEOUT_SECONDS,
        max_bytes: int = SCRAPE_MAX_BYTES,
        max_redirects: int = SCRAPE_MAX_REDIRECTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.resolver = resolver
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.max_redirects = max_redirects
        self._transport = transport

    async def validate_url(self, url: Any) -> str:
        """Return the URL if it may be fetched, else raise WebsiteFetchError."""
        if not isinstance(url, str) or not url.strip():
            raise WebsiteFetchError("URL is required")
        url = url.strip()

        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError as e:
            raise WebsiteFetchError(INVALID_URL_MESSAGE, detail=repr(e)) from e
        if parts.scheme not in ("http", "https") or not host:
            raise WebsiteFetchError(INVALID_URL_MESSAGE, detail=f"scheme={parts.scheme!r}")

        if host == "localhost" or host.endswith(".localhost"):
            raise WebsiteFetchError(INVALID_URL_MESSAGE, detail=f"local host {host}")

        try:
            addresses = [str(ipaddress.ip_address(host))]
        except ValueError:
            try:
                addresses = await self.resolver(host)
            except OSError as e:
                counter("sources.website.dns_error")
                raise WebsiteFetchError(
                    "Failed to fetch website: host not found", detail=repr(e)
                ) from e

        if not addresses or not all(is_public_address(a) for a in addresses):
            counter("sources.website.private_address")
            logger.warning("Refusing to fetch %s: resolves to a non-public address", host)
            raise WebsiteFetchError(INVALID_URL_MESSAGE, detail=f"{host} -> {addresses}")
        return url

    async def fetch(self, url: Any) -> ScrapedPage:
        """Fetch the page and extract its text, title and images.

        Raises:
            WebsiteFetchError: for invalid or private URLs, upstream errors,
                too many redirects, or pages with too little text.
        """
        current = await self.validate_url(url)
        headers = {"User-Agent": SCRAPE_USER_AGENT, "Accept": _ACCEPT}

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.timeout_seconds,
                follow_redirects=False,
            ) as client:
                for _ in range(self.max_redirects + 1):
                    async with client.stream("GET", current, headers=headers) as response:
                        if response.is_redirect:
                            location = response.headers.get("Location", "")
                            current = await self.validate_url(urljoin(current, location))
                            continue
                        if not response.is_success:
                            counter("sources.website.upstream_error")
                            raise WebsiteFetchError(
                                f"Failed to fetch website: {response.status_code} "
                                f"{response.reason_phrase}".rstrip()
                            )
                        body = await self._read_limited(response)
                        encoding = response.charset_encoding or "utf-8"
                        break
                else:
                    raise WebsiteFetchError("Failed to fetch website: too many redirects")
        except httpx.TimeoutException as e:
            counter("sources.website.timeout")
            raise WebsiteFetchError("Failed to fetch website: timed out", detail=repr(e)) from e
        except httpx.HTTPError as e:
            counter("sources.website.transport_error")
            logger.warning("Website fetch failed for %s: %r", current, e)
            raise WebsiteFetchError(detail=repr(e)) from e

        try:
            html = body.decode(encoding, errors="replace")
        except LookupError:
            logger.info("Unknown charset %r from %s; decoding as UTF-8", encoding, current)
            html = body.decode("utf-8", errors="replace")
        return self.extract(current, html)

    async def _read_limited(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            chunks.append(chunk)
            size += len(chunk)
            if size >= self.max_bytes:
                logger.info("Page larger than %d bytes; truncating", self.max_bytes)
                break
        return b"".join(chunks)[: self.max_bytes]

    @staticmethod
    def extract(url: str, html: str) -> ScrapedPage:
        soup = parse_html(html)
        title = extract_title(soup, url)
        images = extract_images(soup, url, SCRAPE_MAX_IMAGES)
        content = html_to_text(soup)

        if len(content) > SCRAPE_MAX_CHARS:
            content = content[:SCRAPE_MAX_CHARS] + "..."
        if len(content) < SCRAPE_MIN_CHARS:
            counter("sources.website.insufficient_content")
            raise WebsiteFetchError(INSUFFICIENT_CONTENT_MESSAGE, detail=f"{len(content)} chars")

        counter("sources.website.fetched")
        logger.info("Extracted %d characters and %d images from %s", len(content), len(images), url)
        return ScrapedPage(url=url, title=title, content=content, images=images)
