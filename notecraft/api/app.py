"""FastAPI server for notecraft"""

from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notecraft.api.middleware.rate_limit import RateLimitMiddleware
from notecraft.api.middleware.security_headers import SecurityHeadersMiddleware
from notecraft.api.routes.health import router as health_router
from notecraft.api.routes.notes import router as notes_router
from notecraft.api.routes.website import router as website_router
from notecraft.config import APP_VERSION, FRONTEND_ORIGIN
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="notecraft API", version=APP_VERSION)

logger = get_logger(__name__)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Custom validation error handler that prevents leaking internal validation logic.
    """
    # Log the path only; bodies may contain the user's notes
    logger.warning("Validation error on %s: %d error(s)", request.url.path, len(exc.errors()))
    counter("api.validation_errors")

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


ALLOWED_ORIGINS = [origin for origin in [FRONTEND_ORIGIN] if origin]

# Allow localhost in development only
if os.getenv("NOTECRAFT_ENV", "development") == "development":
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8080",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "apikey", "x-client-info"],
)

# Rate limiting - every generation request can cost several model calls
app.add_middleware(RateLimitMiddleware)

app.add_middleware(SecurityHeadersMiddleware)

app.include_router(health_router)
app.include_router(notes_router)
app.include_router(website_router)

log_event("api.startup", service="notecraft", version=APP_VERSION)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "notecraft API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "continue": "/continue",
            "study_pack": "/generate-study-pack",
            "coverage": "/coverage",
            "scrape_website": "/scrape-website",
        },
    }


def main() -> None:
    """Run the API with uvicorn (console script entry point)."""
    import uvicorn

    from notecraft.config import API_HOST, API_PORT

    uvicorn.run("notecraft.api.app:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
