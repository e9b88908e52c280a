"""Bounded, classified retries for model calls.

Errors are sorted into transient ones (network, timeout, rate limit, 5xx),
which are retried with exponential backoff, and fatal ones (auth, other 4xx,
validation), which fail on the first attempt. Unclassified errors are
retried.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import httpx

from agent_engine.cancellation import CancellationToken, guarded
from agent_engine.config import RetryPolicy
from agent_engine.exceptions import ExecutionCancelled, RequestValidationError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 429}

_RETRYABLE_PATTERN = re.compile(
    r"network|connection|econnreset|econnrefused|econnaborted|etimedout|"
    r"enotfound|eai_again|timed? ?out|timeout|rate.?limit|too many requests|"
    r"service unavailable|bad gateway|gateway timeout|internal server error|"
    r"\b429\b|\b5\d\d\b",
    re.IGNORECASE,
)

_FATAL_PATTERN = re.compile(
    r"unauthori[sz]ed|forbidden|invalid api.?key|authentication|permission denied|"
    r"bad request|validation|not found|\b4\d\d\b",
    re.IGNORECASE,
)


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable(error: BaseException) -> bool:
    """Decide whether ``error`` is worth another attempt."""
    if isinstance(error, (RequestValidationError, ExecutionCancelled)):
        return False

    status = _status_of(error)
    if status is not None:
        if status in _RETRYABLE_STATUS or status >= 500:
            return True
        if 400 <= status < 500:
            return False

    if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(error, httpx.TransportError):
        return True

    message = str(error)
    if _RETRYABLE_PATTERN.search(message):
        return True
    if _FATAL_PATTERN.search(message):
        return False
    return True


def compute_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay in ms to wait after failed attempt ``attempt`` (0-based)."""
    return min(policy.base_delay_ms * policy.backoff_factor**attempt, policy.max_delay_ms)


class BackoffExecutor:
    """Run an async operation up to ``max_retries + 1`` times.

    Args:
        policy: Retry bounds and delay curve.
        sleep: Awaitable sleep taking seconds. Swappable for tests.
        classifier: Predicate deciding whether an error is retryable.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        classifier: Callable[[BaseException], bool] = is_retryable,
    ):
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.classifier = classifier
        self.last_attempts = 0

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        cancel_token: Optional[CancellationToken] = None,
        classifier: Optional[Callable[[BaseException], bool]] = None,
    ) -> Any:
        """Run ``operation`` with retries.

        ``classifier`` overrides the executor's predicate for this run only.

        Raises:
            ExecutionCancelled: If ``cancel_token`` fires.
            Exception: The last error once retries are exhausted, or the
                first non-retryable error.
        """
        max_attempts = self.policy.max_retries + 1
        classify = classifier or self.classifier
        self.last_attempts = 0

        for attempt in range(max_attempts):
            self.last_attempts = attempt + 1
            try:
                return await guarded(operation(), cancel_token)
            except ExecutionCancelled:
                raise
            except Exception as e:
                if not classify(e):
                    logger.debug(f"Non-retryable error on attempt {attempt + 1}: {e}")
                    raise
                if attempt + 1 >= max_attempts:
                    logger.warning(f"Giving up after {max_attempts} attempt(s): {e}")
                    raise

                delay_ms = compute_delay(attempt, self.policy)
                logger.warning(
                    f"Attempt {attempt + 1}/{max_attempts} failed, "
                    f"retrying in {delay_ms:.0f}ms: {e}"
                )
                await guarded(self.sleep(delay_ms / 1000), cancel_token)
