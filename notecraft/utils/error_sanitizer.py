"""
Error message sanitization utility.

Prevents information leakage by sanitizing error messages before returning
them to clients. Notes errors already carry a curated user message; this is
for everything else.
"""

from __future__ import annotations

import re

from notecraft.observability.logging import get_logger

logger = get_logger(__name__)

# Patterns that might leak sensitive information
SENSITIVE_PATTERNS = [
    # File paths
    r"/[^\s]+\.py",
    r"[A-Za-z]:\\[^\s]+",
    # Stack trace indicators
    r"Traceback \(most recent call last\)",
    r"File \".*\"",
    r"line \d+",
    # Upstream endpoints
    r"https?://[^\s]+",
    # API keys / secrets patterns
    r"[A-Za-z0-9_-]{20,}",
    r"Bearer [A-Za-z0-9._-]+",
    # Internal module names
    r"notecraft\.[a-z_.]+",
]

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Authentication required.",
    403: "Access denied.",
    404: "Resource not found.",
    422: "Invalid data format.",
    429: "Too many requests. Please try again later.",
    500: "An internal error occurred. Please try again later.",
    503: "Service temporarily unavailable.",
}


def sanitize_error_message(
    message: str,
    status_code: int = 500,
    allow_field_names: bool = True,
) -> str:
    """
    Sanitize an error message to prevent information leakage.

    Args:
        message: The original error message
        status_code: HTTP status code (used to select generic fallback)
        allow_field_names: Whether to allow simple field name references

    Returns:
        Sanitized error message safe for client consumption
    """
    fallback = GENERIC_MESSAGES.get(status_code, "An error occurred.")
    if not message:
        return fallback

    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            logger.warning("Sanitized sensitive error pattern: %s", pattern)
            return fallback

    # Short validation messages are safe to echo back
    if (
        status_code in (400, 422)
        and allow_field_names
        and len(message) < 100
        and not any(c in message for c in ["{", "}", "[", "]", "\n"])
    ):
        return message

    return fallback


def get_safe_error_detail(
    error: Exception,
    status_code: int = 500,
    context: str | None = None,
) -> str:
    """
    Get a safe error detail string for HTTP responses.

    Args:
        error: The exception that occurred
        status_code: HTTP status code
        context: Optional message to use instead of the error text for 5xx

    Returns:
        Safe error message for client
    """
    logger.error("Error (status=%d): %s - %s", status_code, type(error).__name__, str(error))

    if context and status_code >= 500:
        return context
    return sanitize_error_message(str(error), status_code)
