"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Paths
DATA_DIR: Path = Path(os.getenv("DATA_DIR", "./data"))
SQLITE_PATH: Path = Path(os.getenv("SQLITE_PATH", "")) if os.getenv("SQLITE_PATH") else DATA_DIR / "skribe.db"

# Provider selection and API keys
LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "anthropic").lower()
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

# Models
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
MAX_TOKENS: int = int(os.getenv("MAX_TOKENS", "4096"))

# Web search (provider-executed tool)
WEB_SEARCH_ENABLED: bool = _flag("WEB_SEARCH_ENABLED", "true")
WEB_SEARCH_MAX_USES: int = int(os.getenv("WEB_SEARCH_MAX_USES", "5"))

# Orchestration bounds
MAX_ROUND_TRIPS: int = int(os.getenv("MAX_ROUND_TRIPS", "12"))
TURN_TIMEOUT_SECS: float = float(os.getenv("TURN_TIMEOUT_SECS", "120"))
RUN_TIMEOUT_SECS: float = float(os.getenv("RUN_TIMEOUT_SECS", "600"))

# Response framing: "ndjson" or "text"
STREAM_FORMAT: str = os.getenv("STREAM_FORMAT", "ndjson").lower()

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]


def provider_api_key(provider: str | None = None) -> str:
    """Return the API key for a provider name (defaults to LLM_PROVIDER).

    An empty string means the provider is not configured.
    """
    name = (provider or LLM_PROVIDER).lower()
    if name == "anthropic":
        return ANTHROPIC_API_KEY
    if name == "gemini":
        return GEMINI_API_KEY
    return ""
