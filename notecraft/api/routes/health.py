"""Health check endpoint for notecraft API.

Liveness check plus credential readiness; never calls the gateway.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from notecraft.config import APP_VERSION
from notecraft.infrastructure.settings import get_gateway_api_key
from notecraft.observability.telemetry import get_latency_stats

router = APIRouter(tags=["health"])

# Request latencies recorded by the notes routes
LATENCY_METRICS = {
    "continue": "api.continue.latency",
    "study_pack": "api.study_pack.latency",
    "scrape_website": "api.scrape_website.latency",
}


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint.

    Returns service status, version, whether the AI gateway and the auth
    provider are configured (presence only), and per-endpoint latency stats
    for this process.
    """
    llm_ready = bool(get_gateway_api_key())
    auth_ready = bool(os.getenv("SUPABASE_URL")) and bool(os.getenv("SUPABASE_ANON_KEY"))

    return {
        "status": "healthy",
        "service": "notecraft API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {"ready": llm_ready},
        "auth": {"ready": auth_ready},
        "latency": {name: get_latency_stats(metric) for name, metric in LATENCY_METRICS.items()},
    }
