"""Website import endpoint for notecraft API.

POST /scrape-website fetches a public page and returns its text, title and
up to five illustration URLs. Unlike the generation endpoints, failures use
HTTP status codes: 400 for anything the caller can fix or retry, 401/503 for
authentication.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from notecraft.api.middleware.user_auth import authenticate_request
from notecraft.api.routes.notes import read_json_body
from notecraft.errors import AuthError, NotesError, UnexpectedError, WebsiteFetchError
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, time_block
from notecraft.sources.website import WebsiteFetcher
from notecraft.utils.error_sanitizer import get_safe_error_detail

router = APIRouter(tags=["sources"])
logger = get_logger(__name__)


class ScrapeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Any = None


_website_fetcher: WebsiteFetcher | None = None


def set_website_fetcher(fetcher: WebsiteFetcher | None) -> None:
    """Replace the fetcher used by the endpoint (None restores the default)."""
    global _website_fetcher
    _website_fetcher = fetcher


def get_website_fetcher() -> WebsiteFetcher:
    return _website_fetcher if _website_fetcher is not None else WebsiteFetcher()


@router.post("/scrape-website")
async def scrape_website(request: Request) -> JSONResponse:
    try:
        await authenticate_request(request)
    except AuthError as e:
        counter("api.auth.rejected")
        return JSONResponse(status_code=e.status_code, content={"error": e.user_message})
    except NotesError as e:
        return JSONResponse(status_code=500, content={"error": e.user_message})

    payload = ScrapeRequest.model_validate(await read_json_body(request))

    try:
        with time_block("api.scrape_website.latency"):
            page = await get_website_fetcher().fetch(payload.url)
    except WebsiteFetchError as e:
        counter("api.scrape_website.rejected")
        logger.info("Website import failed: %s (%s)", e.user_message, e.detail)
        return JSONResponse(status_code=e.status_code, content={"error": e.user_message})
    except Exception as e:
        logger.exception("Unhandled error in scrape_website")
        message = get_safe_error_detail(e, 500, context=UnexpectedError.default_message)
        return JSONResponse(status_code=500, content={"error": message})

    counter("api.scrape_website.success")
    return JSONResponse(content=page.to_response())
