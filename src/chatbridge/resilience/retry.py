from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import httpx

from chatbridge.core.errors import (
    ProviderClientError,
    ProviderError,
    ProviderTransientError,
    RetryExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0              # seconds
    max_delay: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("RetryPolicy.base_delay must be >= 0")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError("RetryPolicy.max_delay must be >= 0 or None")

    def compute_backoff(self, attempt: int) -> float:
        """Delay after failed attempt `attempt` (0-indexed): base_delay * 2**attempt."""
        delay = self.base_delay * (2 ** attempt)
        return min(self.max_delay, delay) if self.max_delay is not None else delay


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable(exc: BaseException) -> bool:
    """
    HTTP client errors (4xx) fail identically on replay and are never retried.
    Neutral errors other than transient ones (translation, stream integrity,
    unsupported operation) are not retried either. Everything else is.
    """
    if isinstance(exc, ProviderClientError):
        return False
    if isinstance(exc, ProviderTransientError):
        return True
    if isinstance(exc, ProviderError):
        return False
    status = _status_code(exc)
    if status is not None and 400 <= status <= 499:
        return False
    return True


class RetryExecutor:
    """
    Runs a zero-argument operation under a bounded exponential-backoff policy.
    For streams, wrap only the establishment (request + status check); once
    bytes are flowing a failure cannot be replayed without duplicating output.
    """

    def __init__(self, policy: Optional[RetryPolicy] = None,
                 classifier: Callable[[BaseException], bool] = is_retryable):
        self.policy = policy or RetryPolicy()
        self.classifier = classifier

    def run(self, operation: Callable[[], T], *, describe: str = "operation") -> T:
        attempts = self.policy.max_attempts
        last: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                return operation()
            except Exception as e:
                if not self.classifier(e):
                    raise
                last = e
                if attempt + 1 >= attempts:
                    break
                delay = self.policy.compute_backoff(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    describe, attempt + 1, attempts, e, delay,
                )
                time.sleep(delay)

        raise RetryExhaustedError(
            f"{describe} failed after {attempts} attempts: {last}",
            last_error=last,
            attempts=attempts,
            status_code=getattr(last, "status_code", None),
        ) from last
