from __future__ import annotations
from typing import Optional


class ProviderError(Exception):
    """
    Base class for provider-level failures.
    Carries optional context (model, endpoint, attempts, status_code) so
    operators can tell a bad request from a bad or unreachable backend.
    """

    def __init__(
        self,
        message: str = "",
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        attempts: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.model = model
        self.endpoint = endpoint
        self.attempts = attempts
        self.status_code = status_code

    def add_context(self, *, model: Optional[str] = None, endpoint: Optional[str] = None) -> "ProviderError":
        # Keep the innermost context if one was already attached
        if self.model is None:
            self.model = model
        if self.endpoint is None:
            self.endpoint = endpoint
        return self

    def __str__(self) -> str:
        ctx = [
            f"{k}={v}"
            for k, v in (("model", self.model), ("endpoint", self.endpoint), ("attempts", self.attempts))
            if v is not None
        ]
        return f"{self.message} ({', '.join(ctx)})" if ctx else self.message


class ProviderClientError(ProviderError):
    """
    Non-retryable: caller/config issue (4xx invalid request, auth, unknown model,
    unsupported parameter, etc.). The fix is change input/config, not retry.
    """


class ProviderTransientError(ProviderError):
    """
    Retryable: timeouts, connection refused, DNS failures, 5xx, etc.
    Retrying with backoff is appropriate.
    """

    def __init__(self, message: str = "", *, timeout: bool = False, **context):
        super().__init__(message, **context)
        self.timeout = timeout


class TranslationError(ProviderError):
    """Backend output could not be mapped to the canonical model (e.g. bad tool-call arguments)."""


class StreamIntegrityError(ProviderError):
    """The streamed body is unusable. Not retried: the caller must issue a new request."""


class BufferExceededError(StreamIntegrityError):
    pass


class TooManyParseErrorsError(StreamIntegrityError):
    pass


class RetryExhaustedError(ProviderError):
    """All attempts failed; `last_error` is the final underlying failure."""

    def __init__(self, message: str, *, last_error: Optional[BaseException] = None, **context):
        super().__init__(message, **context)
        self.last_error = last_error


class EmbeddingUnsupportedError(ProviderError):
    pass
