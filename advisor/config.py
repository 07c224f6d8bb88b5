from __future__ import annotations
"""
Advisor — Configuration
========================
Service-wide settings. Everything here can be overridden from the
environment or the project's .env file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent.parent  # advisor/config.py → advisor → repo root
load_dotenv(PROJECT_ROOT / ".env")

DATABASE_PATH = os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "advisor.db"))
VECTOR_STORE_PATH = Path(os.getenv("VECTOR_STORE_PATH", str(PROJECT_ROOT / "vector-store")))


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Generation (Anthropic)
# ---------------------------------------------------------------------------
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ADVISOR_MODEL = os.getenv("ADVISOR_MODEL", "claude-sonnet-4-5-20250929")
ADVISOR_MAX_TOKENS = int(os.getenv("ADVISOR_MAX_TOKENS", "2000"))
ADVISOR_TEMPERATURE = float(os.getenv("ADVISOR_TEMPERATURE", "0.7"))

# ---------------------------------------------------------------------------
# Short-term memory (per-user recent-turn window)
# ---------------------------------------------------------------------------
MEMORY_WINDOW_SIZE = int(os.getenv("MEMORY_WINDOW_SIZE", "5"))
MEMORY_TTL_SECONDS = float(os.getenv("MEMORY_TTL_SECONDS", "1800"))
MEMORY_SWEEP_INTERVAL_SECONDS = float(os.getenv("MEMORY_SWEEP_INTERVAL_SECONDS", "60"))

# ---------------------------------------------------------------------------
# Long-term memory (ChromaDB + OpenAI embeddings)
# ---------------------------------------------------------------------------
LONG_TERM_ENABLED = _get_bool("LONG_TERM_ENABLED", True)
LONG_TERM_COLLECTION = os.getenv("LONG_TERM_COLLECTION", "advisor-conversations")
LONG_TERM_TOP_K = int(os.getenv("LONG_TERM_TOP_K", "3"))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# ---------------------------------------------------------------------------
# Backend timeouts (seconds)
# ---------------------------------------------------------------------------
RETRIEVAL_TIMEOUT_SECONDS = float(os.getenv("RETRIEVAL_TIMEOUT_SECONDS", "3"))
PERSISTENCE_TIMEOUT_SECONDS = float(os.getenv("PERSISTENCE_TIMEOUT_SECONDS", "5"))

# ---------------------------------------------------------------------------
# Market snapshot
# ---------------------------------------------------------------------------
MARKET_DATA_URL = os.getenv("MARKET_DATA_URL", "")
MARKET_REFRESH_SECONDS = float(os.getenv("MARKET_REFRESH_SECONDS", "600"))
MARKET_FETCH_TIMEOUT_SECONDS = float(os.getenv("MARKET_FETCH_TIMEOUT_SECONDS", "10"))
MARKET_SNAPSHOT_LIMIT = int(os.getenv("MARKET_SNAPSHOT_LIMIT", "50"))

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
DISCONNECT_POLL_SECONDS = float(os.getenv("DISCONNECT_POLL_SECONDS", "0.25"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
