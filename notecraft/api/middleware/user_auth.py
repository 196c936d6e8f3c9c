"""
User authentication for notecraft API.

Verifies Supabase access tokens sent by the web app and extracts user identity.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx
from cachetools import TTLCache
from fastapi import Request

from notecraft.config import (
    AUTH_CACHE_MAX_SIZE,
    AUTH_CACHE_TTL_SECONDS,
    AUTH_TIMEOUT_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
)
from notecraft.errors import AuthError, ConfigurationError
from notecraft.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AuthenticatedUser:
    """Represents an authenticated Supabase user."""

    id: str
    email: str
    role: str | None = None

    def __str__(self) -> str:
        return f"User({self.id})"


# Short TTL so revoked sessions stop working quickly
_token_cache: TTLCache[str, AuthenticatedUser] = TTLCache(
    maxsize=AUTH_CACHE_MAX_SIZE, ttl=AUTH_CACHE_TTL_SECONDS
)


async def verify_supabase_token(
    token: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AuthenticatedUser:
    """
    Verify a Supabase access token and return user info.

    Args:
        token: The JWT access token from the Supabase session
        transport: Optional httpx transport (tests)

    Returns:
        AuthenticatedUser with the Supabase user id and email

    Raises:
        AuthError: If the token is rejected (401) or the auth service is
            unreachable (503)
        ConfigurationError: If the auth provider is not configured
    """
    if token in _token_cache:
        return _token_cache[token]

    # Read fresh (dotenv may load after import)
    supabase_url = os.getenv("SUPABASE_URL") or SUPABASE_URL
    anon_key = os.getenv("SUPABASE_ANON_KEY") or SUPABASE_ANON_KEY
    if not supabase_url or not anon_key:
        logger.error("SUPABASE_URL / SUPABASE_ANON_KEY not configured")
        raise ConfigurationError("Authentication is not configured on the backend")

    async with httpx.AsyncClient(transport=transport) as client:
        try:
            response = await client.get(
                f"{supabase_url.rstrip('/')}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": anon_key},
                timeout=AUTH_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException:
            logger.warning("Token validation timed out")
            raise AuthError("Authentication service unavailable", status_code=503) from None
        except httpx.RequestError as e:
            logger.error("Token validation request failed: %s", e)
            raise AuthError("Authentication service unavailable", status_code=503) from e

    if response.status_code != 200:
        logger.warning("Invalid token: status=%d", response.status_code)
        raise AuthError("Invalid or expired token")

    try:
        userinfo = response.json()
        user = AuthenticatedUser(
            id=str(userinfo["id"]),
            email=userinfo.get("email") or "",
            role=userinfo.get("role"),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error("Unexpected user payload from auth service: %r", e)
        raise AuthError("Failed to retrieve user information") from e

    _token_cache[token] = user
    logger.info("Authenticated user: %s (cache size: %d)", user, len(_token_cache))
    return user


def _extract_bearer_token(authorization: str | None) -> str:
    """Extract token from Authorization header."""
    if not authorization:
        raise AuthError("Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid authorization header format. Expected: Bearer <token>")

    return parts[1]


async def authenticate_request(request: Request) -> AuthenticatedUser:
    """Resolve the caller of a request; raises AuthError when unauthenticated."""
    token = _extract_bearer_token(request.headers.get("Authorization"))
    return await verify_supabase_token(token)


def clear_token_cache() -> None:
    """Clear the token cache. Useful for testing."""
    _token_cache.clear()
