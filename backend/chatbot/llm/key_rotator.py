"""Upstream API key pool with round-robin rotation and per-call failover."""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import openai

from backend.chatbot.errors import AllKeysExhaustedError, NoApiKeyError
from backend.chatbot.utils.logging import StructuredUpstreamLogger
from backend.chatbot.utils.metrics import PrometheusUpstreamMetrics

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Errors that no other key can fix
FATAL_UPSTREAM_ERRORS: tuple[type[BaseException], ...] = (
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


class KeyRotator:
    """Pool of API keys handed out round-robin.

    A single instance is shared by every concurrent embedding and generation
    call; the rotation counter is guarded by a lock.
    """

    def __init__(self, keys: list[str] | str | None = None) -> None:
        self._lock = threading.Lock()
        self._keys: list[str] = []
        self._counter = 0
        if keys:
            self.set_keys(keys)

    def set_keys(self, keys: list[str] | str) -> None:
        """Replace the pool. Accepts a list or a comma-separated string; blanks are dropped."""
        raw = keys.split(",") if isinstance(keys, str) else keys
        cleaned = [key.strip() for key in raw if key and key.strip()]

        with self._lock:
            self._keys = cleaned
            self._counter = 0

    def next_key(self) -> str:
        """Next key in rotation order, or empty string if the pool is empty."""
        with self._lock:
            if not self._keys:
                return ""
            key = self._keys[self._counter % len(self._keys)]
            self._counter += 1
            return key

    def keys_from_next(self) -> list[str]:
        """Whole pool in rotation order, starting at the next key.

        Advances the rotation by one, so concurrent callers start on different keys
        while each still walks every key.
        """
        with self._lock:
            if not self._keys:
                return []
            start = self._counter % len(self._keys)
            self._counter += 1
            return self._keys[start:] + self._keys[:start]

    def has_keys(self) -> bool:
        """True if at least one key is configured."""
        with self._lock:
            return bool(self._keys)

    def get_key_count(self) -> int:
        """Number of keys in the pool."""
        with self._lock:
            return len(self._keys)


_upstream_logger = StructuredUpstreamLogger()
_upstream_metrics = PrometheusUpstreamMetrics()


async def retry_with_api_key(
    rotator: KeyRotator,
    operation: Callable[[str], Awaitable[T]],
    *,
    operation_name: str = "upstream",
    max_attempts: int | None = None,
) -> T:
    """Run an upstream call, failing over across the key pool.

    Calls `operation(key)` with keys in rotation order and returns the first
    success. A failure on one key moves on to the next; each key is tried at
    most once unless max_attempts says otherwise.

    Args:
        rotator: Shared key pool
        operation: Async callable taking an API key
        operation_name: Label for logs and metrics
        max_attempts: Attempt cap (default: one per key)

    Returns:
        The operation's result

    Raises:
        NoApiKeyError: The pool is empty
        AllKeysExhaustedError: Every attempt failed; chained from the last error
        Exception: Errors in FATAL_UPSTREAM_ERRORS are re-raised immediately
    """
    keys = rotator.keys_from_next()
    if not keys:
        raise NoApiKeyError(f"No API key available for {operation_name}")

    attempts = max_attempts or len(keys)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        api_key = keys[(attempt - 1) % len(keys)]

        start = time.monotonic()
        try:
            result = await operation(api_key)
        except FATAL_UPSTREAM_ERRORS as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            _upstream_metrics.record_latency(operation_name, "fatal", elapsed_ms)
            _upstream_metrics.inc_error(operation_name, type(e).__name__)
            _upstream_logger.log_attempt(
                operation_name, attempt, "fatal", elapsed_ms, error_reason=type(e).__name__
            )
            raise
        except Exception as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            last_error = e
            _upstream_metrics.record_latency(operation_name, "error", elapsed_ms)
            _upstream_metrics.inc_error(operation_name, type(e).__name__)
            _upstream_logger.log_attempt(
                operation_name, attempt, "error", elapsed_ms, error_reason=type(e).__name__
            )
            continue

        elapsed_ms = (time.monotonic() - start) * 1000
        _upstream_metrics.record_latency(operation_name, "success", elapsed_ms)
        _upstream_logger.log_attempt(operation_name, attempt, "success", elapsed_ms)
        return result

    raise AllKeysExhaustedError(operation_name, attempts, last_error) from last_error
