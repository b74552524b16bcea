# tests/unit/test_retry.py

from __future__ import annotations
import sys
from pathlib import Path
import httpx
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from chatbridge.core.errors import (  # type: ignore
    BufferExceededError,
    ProviderClientError,
    ProviderTransientError,
    RetryExhaustedError,
    TranslationError,
)
from chatbridge.resilience.retry import RetryExecutor, RetryPolicy, is_retryable  # type: ignore


# -------- helpers --------

class FlakyThenOK:
    def __init__(self, fail_times=2, exc=None):
        self.calls = 0
        self.fail_times = fail_times
        self.exc = exc or ProviderTransientError("HTTP 503: Service Unavailable", status_code=503)

    def __call__(self):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise self.exc
        return "ok"


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    # no sleeping during tests
    monkeypatch.setattr("chatbridge.resilience.retry.time.sleep", lambda s: recorded.append(s))
    return recorded


# -------- tests --------

def test_503_twice_then_success(sleeps):
    op = FlakyThenOK(fail_times=2)
    assert RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0)).run(op) == "ok"
    assert op.calls == 3
    assert sleeps == [1.0, 2.0]


def test_400_is_not_retried(sleeps):
    op = FlakyThenOK(fail_times=5, exc=ProviderClientError("HTTP 400: Bad Request", status_code=400))
    with pytest.raises(ProviderClientError):
        RetryExecutor(RetryPolicy(max_attempts=3)).run(op)
    assert op.calls == 1
    assert sleeps == []


def test_raw_httpx_4xx_is_not_retried(sleeps):
    request = httpx.Request("POST", "http://localhost:11434/api/chat")
    response = httpx.Response(404, request=request)
    exc = httpx.HTTPStatusError("not found", request=request, response=response)
    op = FlakyThenOK(fail_times=1, exc=exc)
    with pytest.raises(httpx.HTTPStatusError):
        RetryExecutor().run(op)
    assert op.calls == 1


def test_exhaustion_wraps_last_error_and_counts_attempts(sleeps):
    op = FlakyThenOK(fail_times=10, exc=ProviderTransientError("connection refused"))
    with pytest.raises(RetryExhaustedError) as ei:
        RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0.5)).run(op, describe="chat")
    err = ei.value
    assert op.calls == 3
    assert err.attempts == 3
    assert isinstance(err.last_error, ProviderTransientError)
    assert err.__cause__ is err.last_error
    assert "3 attempts" in str(err)
    assert sleeps == [0.5, 1.0]


def test_timeouts_and_unknown_errors_are_retryable():
    assert is_retryable(TimeoutError("slow"))
    assert is_retryable(httpx.ConnectError("refused"))
    assert is_retryable(ProviderTransientError("t", timeout=True))
    assert is_retryable(RuntimeError("who knows"))


def test_fatal_categories_are_not_retryable():
    assert not is_retryable(ProviderClientError("bad", status_code=422))
    assert not is_retryable(TranslationError("bad args"))
    assert not is_retryable(BufferExceededError("too long"))


def test_keyboard_interrupt_passthrough(sleeps):
    def op():
        raise KeyboardInterrupt()
    with pytest.raises(KeyboardInterrupt):
        RetryExecutor().run(op)
    assert sleeps == []


def test_custom_classifier_is_used(sleeps):
    op = FlakyThenOK(fail_times=1)
    with pytest.raises(ProviderTransientError):
        RetryExecutor(classifier=lambda _e: False).run(op)
    assert op.calls == 1


def test_backoff_doubles_and_caps():
    policy = RetryPolicy(base_delay=1.0, max_delay=3.0)
    assert [policy.compute_backoff(k) for k in range(4)] == [1.0, 2.0, 3.0, 3.0]


def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)
