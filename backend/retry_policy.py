"""Creator Safety Vetting - Retry Policy
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Error taxonomy for capability calls and the exponential backoff used
by the media scheduler and the review tiers.

  Transient  - rate limiting, overload, timeouts, dropped connections.
               Retried with exponential backoff.
  Permanent  - anything else (bad request, auth, malformed payload).
               Fails on the first attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import anthropic
import httpx
import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Status codes worth another attempt (529 = provider overloaded)
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504, 529}

# Substrings that mark a transient failure when only a message is available
RETRYABLE_MESSAGE_MARKERS = (
    "429",
    "529",
    "rate limit",
    "overloaded",
    "timeout",
    "timed out",
    "econnreset",
    "connection reset",
    "socket hang up",
)

_TRANSIENT_EXCEPTION_TYPES = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    openai.APIConnectionError,
    anthropic.APIConnectionError,
    ConnectionResetError,
    asyncio.TimeoutError,
)


class CapabilityError(Exception):
    """Base error raised by capability clients."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientCapabilityError(CapabilityError):
    """Failure expected to clear up on its own (throttling, overload)."""


class PermanentCapabilityError(CapabilityError):
    """Failure that another attempt cannot fix."""


class ProcessingTimeoutError(PermanentCapabilityError):
    """Remote processing did not finish within the absolute timeout."""


def _status_code_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def is_retryable_error(exc: BaseException) -> bool:
    """Return True when exc belongs to the transient error class."""
    if isinstance(exc, PermanentCapabilityError):
        return False
    if isinstance(exc, TransientCapabilityError):
        return True

    status = _status_code_of(exc)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    if isinstance(exc, _TRANSIENT_EXCEPTION_TYPES):
        return True

    message = str(exc).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retry number attempt+1 (attempt is zero-based)."""
    return base_delay * (2 ** attempt)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    retries: int,
    base_delay: float,
    label: str = "operation",
    on_attempt: Optional[Callable[[int], None]] = None,
) -> T:
    """
    Await operation() up to retries + 1 times.

    Only transient errors are retried; the last error is re-raised once
    retries run out or as soon as a permanent error shows up.
    """
    attempt = 0
    while True:
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return await operation()
        except Exception as e:
            if attempt >= retries or not is_retryable_error(e):
                raise
            delay = backoff_delay(base_delay, attempt)
            logger.warning(
                f"{label} failed ({e}), retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{retries + 1})"
            )
            await asyncio.sleep(delay)
            attempt += 1


def raise_for_capability_status(response: httpx.Response, label: str) -> None:
    """Turn a non-2xx response into the matching capability error."""
    if response.is_success:
        return
    status = response.status_code
    detail = response.text[:200] if response.text else ""
    message = f"{label} returned HTTP {status}: {detail}".strip()
    if status in RETRYABLE_STATUS_CODES:
        raise TransientCapabilityError(message, status_code=status)
    raise PermanentCapabilityError(message, status_code=status)
