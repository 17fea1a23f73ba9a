"""Creator Safety Vetting - Batch Configuration
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Tuning defaults for batch processing. Every value can be overridden
with a BATCH_<NAME> environment variable (e.g. BATCH_VIDEO_CONCURRENCY=4).
"""

import os
import logging

logger = logging.getLogger(__name__)

ENV_PREFIX = "BATCH_"


def _env_number(name: str, default, cast=float, allow_zero: bool = False):
    """Read BATCH_<name> as a positive number (or zero if allowed), falling back to default."""
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning(f"Ignoring {ENV_PREFIX}{name}={raw!r}: not a number")
        return default
    if value < 0 or (value == 0 and not allow_zero):
        logger.warning(f"Ignoring {ENV_PREFIX}{name}={raw!r}: must be {'zero or more' if allow_zero else 'positive'}")
        return default
    return value


def env_int(name: str, default: int, allow_zero: bool = False) -> int:
    return _env_number(name, default, int, allow_zero)


def env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


# --- Media scheduler ---
# Video understanding is slow and expensive, so its queue is tighter.
VIDEO_CONCURRENCY = env_int("VIDEO_CONCURRENCY", 10)
VIDEO_INTERVAL_SECONDS = env_float("VIDEO_INTERVAL_SECONDS", 0.5)   # Rate window; admissions per window = concurrency
IMAGE_CONCURRENCY = env_int("IMAGE_CONCURRENCY", 20)
IMAGE_INTERVAL_SECONDS = env_float("IMAGE_INTERVAL_SECONDS", 0.05)
MEDIA_RETRIES = env_int("MEDIA_RETRIES", 3, allow_zero=True)      # Retries after the first attempt
MEDIA_RETRY_DELAY_SECONDS = env_float("MEDIA_RETRY_DELAY_SECONDS", 1.0)  # Doubled every retry

# --- Video processing (remote indexing wait) ---
VIDEO_PROCESSING_TIMEOUT_SECONDS = env_float("VIDEO_PROCESSING_TIMEOUT_SECONDS", 600.0)
VIDEO_POLL_INTERVAL_SECONDS = env_float("VIDEO_POLL_INTERVAL_SECONDS", 2.0)
VIDEO_POLL_MIN_SECONDS = 1.0
VIDEO_POLL_MAX_SECONDS = 10.0
VIDEO_POLL_BACKOFF = 1.5

# --- Review tiers ---
SCREENING_BATCH_SIZE = env_int("SCREENING_BATCH_SIZE", 50)   # Posts per screening request
LLM_RETRIES = env_int("LLM_RETRIES", 3, allow_zero=True)
LLM_RETRY_DELAY_SECONDS = env_float("LLM_RETRY_DELAY_SECONDS", 1.0)

# --- Outer chunking across creators ---
CREATOR_CHUNK_SIZE = env_int("CREATOR_CHUNK_SIZE", 25)
CREATOR_CHUNK_PAUSE_SECONDS = env_float("CREATOR_CHUNK_PAUSE_SECONDS", 0.1)
