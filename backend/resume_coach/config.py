"""Environment-driven settings."""
from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _get_float(key: str, default: float) -> float:
    raw = get_env(key)
    return float(raw) if raw else default


def _get_int(key: str, default: int) -> int:
    raw = get_env(key)
    return int(raw) if raw else default


def _get_list(key: str, default: List[str]) -> List[str]:
    raw = get_env(key)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


ENV = get_env("ENV", "dev").lower()
IS_PROD = ENV in {"prod", "production"}

LOG_LEVEL = get_env("LOG_LEVEL", "INFO").upper()

# Any OpenAI-compatible chat completions endpoint (OpenAI, Groq, a local proxy...)
LLM_API_KEY = get_env("LLM_API_KEY") or get_env("OPENAI_API_KEY")
LLM_BASE_URL = get_env("LLM_BASE_URL") or None
LLM_MODEL = get_env("LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = _get_float("LLM_TEMPERATURE", 0.4)
LLM_MAX_TOKENS = _get_int("LLM_MAX_TOKENS", 4096)
LLM_TIMEOUT_SECONDS = _get_float("LLM_TIMEOUT_SECONDS", 120.0)

FETCH_TIMEOUT_SECONDS = _get_float("FETCH_TIMEOUT_SECONDS", 20.0)
FETCH_MAX_CHARS = _get_int("FETCH_MAX_CHARS", 40000)
FETCH_MAX_BYTES = _get_int("FETCH_MAX_BYTES", 2_000_000)
FETCH_MAX_REDIRECTS = _get_int("FETCH_MAX_REDIRECTS", 5)

CORS_ORIGINS = _get_list("CORS_ORIGINS", ["http://localhost:3000"])
RATE_LIMIT = get_env("RATE_LIMIT", "5/day")

# idle sessions older than this are dropped; 0 keeps them forever
SESSION_TTL_SECONDS = _get_int("SESSION_TTL_SECONDS", 6 * 60 * 60)
