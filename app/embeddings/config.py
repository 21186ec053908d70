"""
Embedding subsystem configuration.

All tunables come from environment variables (loaded from .env by main.py).
Bad values fall back to defaults with a warning instead of failing startup.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


# ============ CONSTANTS ============

EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSIONS = 1536

DEFAULT_BATCH_SIZE = 10
DEFAULT_PROCESSING_DELAY_MS = 100
DEFAULT_MAX_RETRIES = 3
DEFAULT_CRON_BATCH_SIZE = 20
DEFAULT_REQUEST_TIMEOUT = 30.0

# Search defaults and HTTP clamps
DEFAULT_SEARCH_LIMIT = 20
DEFAULT_SIMILARITY_THRESHOLD = 0.7
MAX_SEARCH_LIMIT = 50
MIN_SIMILARITY_THRESHOLD = 0.1
MAX_SIMILARITY_THRESHOLD = 1.0
MIN_QUERY_LENGTH = 2
MAX_SYNC_BATCH_SIZE = 50


class EmbeddingMode(str, Enum):
    """When embeddings get generated for newly saved messages."""
    REALTIME = "realtime"  # inline, during save
    QUEUE = "queue"        # via the background queue
    CRON = "cron"          # periodic sweep of messages missing embeddings
    MANUAL = "manual"      # only on explicit request


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not an integer, using {default}")
        return default
    if value < 0:
        logger.warning(f"[config] {name}={value} is negative, using {default}")
        return default
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not a number, using {default}")
        return default


@dataclass(frozen=True)
class EmbeddingConfig:
    auto_generate: bool = True
    mode: EmbeddingMode = EmbeddingMode.QUEUE
    batch_size: int = DEFAULT_BATCH_SIZE
    processing_delay_ms: int = DEFAULT_PROCESSING_DELAY_MS
    enable_retries: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    cron_secret: Optional[str] = None
    cron_enabled: bool = False
    cron_batch_size: int = DEFAULT_CRON_BATCH_SIZE
    model: str = EMBEDDING_MODEL
    dimensions: int = EMBEDDING_DIMENSIONS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def processing_delay(self) -> float:
        """Delay between items in seconds."""
        return self.processing_delay_ms / 1000.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "EmbeddingConfig":
        env = os.environ if env is None else env

        raw_mode = (env.get("EMBEDDING_MODE") or EmbeddingMode.QUEUE.value).strip().lower()
        try:
            mode = EmbeddingMode(raw_mode)
        except ValueError:
            logger.warning(f"[config] Unknown EMBEDDING_MODE={raw_mode!r}, using 'queue'")
            mode = EmbeddingMode.QUEUE

        batch_size = _env_int(env, "EMBEDDING_BATCH_SIZE", DEFAULT_BATCH_SIZE) or DEFAULT_BATCH_SIZE

        return cls(
            auto_generate=_env_flag(env, "AUTO_GENERATE_EMBEDDINGS", True),
            mode=mode,
            batch_size=batch_size,
            processing_delay_ms=_env_int(env, "EMBEDDING_PROCESSING_DELAY", DEFAULT_PROCESSING_DELAY_MS),
            enable_retries=_env_flag(env, "EMBEDDING_ENABLE_RETRIES", True),
            max_retries=_env_int(env, "EMBEDDING_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            cron_secret=env.get("CRON_SECRET") or None,
            cron_enabled=_env_flag(env, "ENABLE_EMBEDDING_CRON", False),
            model=env.get("ORB_EMBEDDING_MODEL") or EMBEDDING_MODEL,
            request_timeout=_env_float(env, "ORB_EMBEDDING_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        )
