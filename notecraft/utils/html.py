"""HTML-to-text conversion for scraped web pages.

Turns a fetched page into the plain text, title and illustration URLs that
the web app feeds into note generation.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from notecraft.observability.logging import get_logger

logger = get_logger(__name__)

# Substrings that mark decorative images (icons, tracking pixels)
_SKIPPED_IMAGE_HINTS = ("icon", "logo", "avatar", "1x1", "pixel")
_IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)", re.IGNORECASE)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def html_to_text(soup: BeautifulSoup) -> str:
    """Extract readable text from a parsed page.

    Scripts, styles and other non-content elements are dropped first; each
    remaining line is stripped and runs of blank lines collapse to one.
    """
    for tag in soup(["script", "style", "noscript", "template", "head"]):
        tag.decompose()

    text = soup.get_text(separator="\n")

    # Collapse whitespace: multiple blank lines -> single, strip each line
    lines = [" ".join(line.split()) for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_title(soup: BeautifulSoup, url: str) -> str:
    """Page <title>, or the URL's hostname when there is none."""
    if soup.title is not None:
        title = " ".join(soup.title.get_text().split())
        if title:
            return title
    return urlsplit(url).hostname or url


def _is_content_image(src: str) -> bool:
    if src.startswith("data:"):
        return False
    lowered = src.lower()
    return not any(hint in lowered for hint in _SKIPPED_IMAGE_HINTS)


def extract_images(soup: BeautifulSoup, base_url: str, limit: int) -> list[str]:
    """Absolute URLs of the page's illustrations, Open Graph image first.

    Must run before html_to_text(), which removes <head> and its meta tags.
    """
    images: list[str] = []

    og = soup.find("meta", attrs={"property": "og:image"})
    if og is not None and og.get("content"):
        og_image = urljoin(base_url, og["content"].strip())
        if urlsplit(og_image).scheme in ("http", "https"):
            images.append(og_image)

    for img in soup.find_all("img", src=True):
        if len(images) >= limit:
            break
        src = img["src"].strip()
        if not src or not _is_content_image(src):
            continue
        absolute = urljoin(base_url, src)
        if urlsplit(absolute).scheme not in ("http", "https"):
            continue
        if not (_IMAGE_EXTENSION.search(absolute) or "image" in absolute.lower()):
            continue
        if absolute not in images:
            images.append(absolute)

    logger.debug("Found %d content images on %s", len(images), base_url)
    return images[:limit]
