"""
Central configuration for storage locations, AI limits and matching thresholds.

This module defines:
- Repository-relative storage locations (database, uploaded documents, code counter).
- LLM-related limits (text budget, output tokens, timeout) that bound extraction cost.
- Matching and comparison thresholds (match confidence, anomaly spread, candidate caps).

Values are constants resolved once at import time. Each one can be overridden
through the environment (or a `.env` file loaded with python-dotenv); the defaults
reproduce the behavior the price comparator has always had.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_ROOT = Path(os.getenv("PRICE_LISTS_DATA_ROOT", str(PROJECT_ROOT / "data")))

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_ROOT / 'price_lists.db'}")
DOCUMENT_STORE_ROOT = Path(os.getenv("DOCUMENT_STORE_ROOT", str(DATA_ROOT / "documents")))
CATALOG_CODE_STATE = Path(os.getenv("CATALOG_CODE_STATE", str(DATA_ROOT / "catalog_codes.json")))

MAX_FILE_SIZE_MB = 50

MAX_TEXT_CHARS_BEFORE_LLM = _env_int("MAX_TEXT_CHARS_BEFORE_LLM", 30_000)
MAX_OUTPUT_TOKENS = _env_int("MAX_OUTPUT_TOKENS", 4000)
PAIR_MAX_OUTPUT_TOKENS = 10
LLM_TIMEOUT_SECONDS = _env_float("LLM_TIMEOUT_SECONDS", 60.0)
PDF_MULTIMODAL_ENABLED = _env_bool("PDF_MULTIMODAL_ENABLED", False)

DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gpt-4o-mini")
DEFAULT_TEMPERATURE = 0.1
DEFAULT_CONFIDENCE = 85

MATCH_THRESHOLD = _env_float("MATCH_THRESHOLD", 0.7)
ANOMALY_SPREAD_PERCENT = _env_float("ANOMALY_SPREAD_PERCENT", 50.0)
VARIATION_SPREAD_PERCENT = _env_float("VARIATION_SPREAD_PERCENT", 5.0)
LOCAL_FALLBACK_LIMIT = _env_int("LOCAL_FALLBACK_LIMIT", 50)
SEARCH_RESULT_LIMIT = 5
SEARCH_BRAND_BONUS = _env_float("SEARCH_BRAND_BONUS", 0.15)
SEARCH_INDEX_ENABLED = _env_bool("SEARCH_INDEX_ENABLED", True)

MAX_PAIR_CANDIDATES = _env_int("MAX_PAIR_CANDIDATES", 200)
EARLY_STOP_SCORE = _env_float("EARLY_STOP_SCORE", 0.95)
COMPARE_WORKERS = _env_int("COMPARE_WORKERS", 4)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
