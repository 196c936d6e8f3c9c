"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# AI gateway (OpenAI-compatible chat completions)
AI_GATEWAY_URL = os.getenv(
    "AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions"
)
AI_GATEWAY_MODEL = os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash")
AI_GATEWAY_MAX_TOKENS = int(os.getenv("AI_GATEWAY_MAX_TOKENS", "16000"))

# Auth provider (Supabase)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Frontend origin for CORS
FRONTEND_ORIGIN = os.getenv("NOTECRAFT_FRONTEND_ORIGIN", "")


def get_gateway_api_key() -> str | None:
    """Read the gateway credential fresh (dotenv may load after import)."""
    return os.getenv("AI_GATEWAY_API_KEY") or os.getenv("LOVABLE_API_KEY") or None


def is_production() -> bool:
    """Check if running in production (read per call so tests can flip it)"""
    return os.getenv("NOTECRAFT_ENV", "development") == "production"
