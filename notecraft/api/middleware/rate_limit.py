"""Rate limiting middleware for notecraft API

Every continuation request can fan out into several paid model calls, so
requests are capped per client IP.

Generation endpoints report the limit in-band (HTTP 200 with an activity
log) like every other failure they return; other paths get a plain 429.

Security features:
- X-Forwarded-For is only trusted behind a known proxy header
- Per-IP buckets live in TTLCache so idle IPs are evicted
"""

from __future__ import annotations

import ipaddress
import os
import time
from collections.abc import Callable
from typing import Any

from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from notecraft.config import RATE_LIMIT_MAX_IPS, RATE_LIMIT_RPH, RATE_LIMIT_RPM
from notecraft.notes.activity_log import ActivityLog
from notecraft.observability.telemetry import log_event

EXEMPT_PATHS = frozenset({"/", "/health"})
ACTIVITY_LOG_PATHS = frozenset({"/continue", "/generate-study-pack"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP request limits (minute and hour windows).

    For multi-instance deployments a shared store (Redis) would be needed.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = RATE_LIMIT_RPM,
        requests_per_hour: int = RATE_LIMIT_RPH,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour

        # {ip: [timestamp, ...]}
        self.minute_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=RATE_LIMIT_MAX_IPS, ttl=120
        )
        self.hour_buckets: TTLCache[str, list[float]] = TTLCache(
            maxsize=RATE_LIMIT_MAX_IPS, ttl=7200
        )

        self._trusted_proxy_header = os.getenv(
            "NOTECRAFT_TRUSTED_PROXY_HEADER", "X-Cloud-Trace-Context"
        )

    def _is_valid_ip(self, ip_str: str) -> bool:
        try:
            ipaddress.ip_address(ip_str)
            return True
        except ValueError:
            return False

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP with spoofing protection."""
        forwarded = request.headers.get("X-Forwarded-For")
        trusted = self._trusted_proxy_header in request.headers or (
            os.getenv("NOTECRAFT_ENV", "development") == "development"
        )

        if trusted and forwarded:
            ip = forwarded.split(",")[0].strip()
            if self._is_valid_ip(ip):
                return ip

        return request.client.host if request.client else "unknown"

    @staticmethod
    def _recent(bucket: list[float], max_age_seconds: int, now: float) -> list[float]:
        return [ts for ts in bucket if now - ts < max_age_seconds]

    def _limited(
        self, request: Request, limit_name: str, limit: int, retry_after: int, ip: str, count: int
    ) -> Response:
        log_event("api.rate_limit.request_exceeded", ip=ip, limit=limit_name, count=count)
        message = f"Rate limit exceeded. Maximum {limit} requests per {limit_name}."
        headers = {"Retry-After": str(retry_after)}

        if request.url.path in ACTIVITY_LOG_PATHS:
            log = ActivityLog()
            log.error("rate_limited", message)
            return JSONResponse(
                content={"error": message, "activityLog": log.to_list()}, headers=headers
            )

        return JSONResponse(
            status_code=429,
            content={"error": message, "retry_after": retry_after},
            headers=headers,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check rate limits before processing request."""
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = time.time()

        minute_bucket = self._recent(self.minute_buckets.get(client_ip, []), 60, now)
        hour_bucket = self._recent(self.hour_buckets.get(client_ip, []), 3600, now)

        if len(minute_bucket) >= self.requests_per_minute:
            self.minute_buckets[client_ip] = minute_bucket
            return self._limited(
                request, "minute", self.requests_per_minute, 60, client_ip, len(minute_bucket)
            )
        if len(hour_bucket) >= self.requests_per_hour:
            self.hour_buckets[client_ip] = hour_bucket
            return self._limited(
                request, "hour", self.requests_per_hour, 3600, client_ip, len(hour_bucket)
            )

        minute_bucket.append(now)
        hour_bucket.append(now)
        self.minute_buckets[client_ip] = minute_bucket
        self.hour_buckets[client_ip] = hour_bucket

        response = await call_next(request)

        response.headers["X-RateLimit-Limit-Minute"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining-Minute"] = str(
            self.requests_per_minute - len(minute_bucket)
        )
        response.headers["X-RateLimit-Limit-Hour"] = str(self.requests_per_hour)
        response.headers["X-RateLimit-Remaining-Hour"] = str(
            self.requests_per_hour - len(hour_bucket)
        )
        return response
