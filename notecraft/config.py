"""Centralized configuration for the notecraft backend.

Re-exports everything from notecraft.infrastructure.settings, then adds typed
constants for note continuation, study-pack generation, LLM transport,
rate-limiting and usage budgets. Environment variable overrides use safe
defaults so the app starts without extra env configuration.
"""

from __future__ import annotations

import os

from notecraft.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Notes ---
COMPLETION_MARKER: str = "END_OF_NOTES"
MAX_CONTINUATIONS: int = int(os.getenv("NOTECRAFT_MAX_CONTINUATIONS", "5"))
TAIL_WINDOW_CHARS: int = int(os.getenv("NOTECRAFT_TAIL_WINDOW_CHARS", "2000"))
MAX_NOTES_CHARS: int = 200_000
MAX_SOURCE_CHARS: int = 100_000
MAX_TITLE_CHARS: int = 500

# --- Study pack ---
STUDY_PACK_INITIAL_ATTEMPTS: int = 2
STUDY_PACK_MAX_CONTINUATIONS: int = 4
STUDY_PACK_TAIL_WINDOW: int = 1800

# --- Coverage ---
COVERAGE_MIN_TOKEN_LENGTH: int = 5
COVERAGE_WARNING_THRESHOLD: int = int(os.getenv("NOTECRAFT_COVERAGE_WARNING", "60"))

# --- LLM ---
LLM_TIMEOUT_SECONDS: float = float(os.getenv("NOTECRAFT_LLM_TIMEOUT", "120"))
LLM_CONNECT_RETRIES: int = int(os.getenv("NOTECRAFT_LLM_CONNECT_RETRIES", "2"))
LLM_RETRY_BACKOFF: float = float(os.getenv("NOTECRAFT_LLM_RETRY_BACKOFF", "1.0"))

# --- Auth ---
AUTH_TIMEOUT_SECONDS: float = 10.0
AUTH_CACHE_MAX_SIZE: int = 1000
AUTH_CACHE_TTL_SECONDS: int = 600

# --- Rate Limiting ---
RATE_LIMIT_RPM: int = 30
RATE_LIMIT_RPH: int = 300
RATE_LIMIT_MAX_IPS: int = 10000

# --- LLM Budget ---
LLM_USER_DAILY_LIMIT: int = 200
LLM_GLOBAL_DAILY_LIMIT: int = 10000

# --- Website import ---
SCRAPE_TIMEOUT_SECONDS: float = float(os.getenv("NOTECRAFT_SCRAPE_TIMEOUT", "15"))
SCRAPE_MAX_BYTES: int = 5_000_000
SCRAPE_MAX_REDIRECTS: int = 5
SCRAPE_MAX_CHARS: int = 50_000
SCRAPE_MIN_CHARS: int = 100
SCRAPE_MAX_IMAGES: int = 5
SCRAPE_USER_AGENT: str = "Mozilla/5.0 (compatible; notecraft/1.0)"
