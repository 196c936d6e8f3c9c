"""Importers that turn outside material into source text for notes."""

from __future__ import annotations

from notecraft.sources.website import ScrapedPage, WebsiteFetcher

__all__ = ["ScrapedPage", "WebsiteFetcher"]
