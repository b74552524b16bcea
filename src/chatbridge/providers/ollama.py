# src/chatbridge/providers/ollama.py
"""
Bridge to an Ollama-style chat server over HTTP.

Unary:     POST /api/chat {stream: false} -> one JSON document
Streaming: POST /api/chat {stream: true}  -> newline-delimited JSON records
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

import httpx

from chatbridge.core.conversation import Advisory, Conversation, GenerationResult, Turn
from chatbridge.core.errors import (
    EmbeddingUnsupportedError,
    ProviderClientError,
    ProviderError,
    ProviderTransientError,
    StreamIntegrityError,
    TranslationError,
)
from chatbridge.core.tokens import estimate_request_tokens
from chatbridge.providers.capabilities import CapabilityRegistry
from chatbridge.providers.stream_decoder import (
    DEFAULT_MAX_BUFFER_SIZE,
    DEFAULT_MAX_CONSECUTIVE_ERRORS,
    StreamDecoder,
)
from chatbridge.providers.translator import MessageTranslator
from chatbridge.resilience.retry import RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5:1.5b"
DEFAULT_TIMEOUT_MS = 30000

_MODEL_PREFIX = "ollama:"
_JSON_HEADERS = {"Content-Type": "application/json"}


def strip_model_prefix(model: str) -> str:
    return model[len(_MODEL_PREFIX):] if model.startswith(_MODEL_PREFIX) else model


def _classify_transport_error(exc: httpx.HTTPError, endpoint: str) -> ProviderError:
    """
    Convert httpx failures into neutral provider errors.
    """
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTransientError(f"Request to Ollama timed out: {exc}", timeout=True)
    if isinstance(exc, httpx.TransportError):
        return ProviderTransientError(f"Ollama is unreachable at {endpoint}: {exc}")
    return ProviderTransientError(str(exc))


def _error_for_status(response: httpx.Response) -> Optional[ProviderError]:
    """Return the neutral error for a non-2xx response, or None. Body must already be read."""
    s = response.status_code
    if 200 <= s <= 299:
        return None
    body = (response.text or "").strip()
    msg = f"HTTP {s}: {response.reason_phrase}" + (f" - {body}" if body else "")
    if 400 <= s <= 499:
        return ProviderClientError(msg, status_code=s)
    return ProviderTransientError(msg, status_code=s)


class ChatStream:
    """
    Lazy sequence of partial results over one streamed HTTP response.

    Pull-driven: each next() reads just enough of the body to find the next
    line. close() (or leaving a `with` block) releases the connection and
    any buffered data; it runs automatically on exhaustion or failure.
    Mid-stream failures are raised to the consumer and never retried.
    """

    def __init__(
        self,
        response: httpx.Response,
        *,
        decoder: StreamDecoder,
        translator: MessageTranslator,
        model: str,
        endpoint: str,
        advisories: Tuple[Advisory, ...] = (),
    ):
        self._response = response
        self._records = decoder.decode(response.iter_bytes())
        self._translator = translator
        self.model = model
        self.endpoint = endpoint
        self.advisories = advisories
        self.closed = False
        self.done = False
        self._first = True

    def __iter__(self) -> "ChatStream":
        return self

    def __next__(self) -> GenerationResult:
        if self.closed:
            raise StopIteration
        try:
            while True:
                record = next(self._records)
                if record.get("error"):
                    raise StreamIntegrityError(f"Ollama reported an error mid-stream: {record['error']}")
                if record.get("message"):
                    turn, done = self._translator.from_wire(record)
                elif record.get("done"):
                    # bare terminal record: surface an empty final result
                    turn, done = Turn(role="model"), True
                else:
                    continue
                self.done = done
                advisories = self.advisories if self._first else ()
                self._first = False
                return GenerationResult(turn=turn, done=done, model=self.model, advisories=advisories)
        except StopIteration:
            self.close()
            raise
        except ProviderError as e:
            self.close()
            e.add_context(model=self.model, endpoint=self.endpoint)
            raise
        except httpx.HTTPError as e:
            self.close()
            err = _classify_transport_error(e, self.endpoint)
            err.add_context(model=self.model, endpoint=self.endpoint)
            raise err from e
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._records.close()
        finally:
            self._response.close()

    def __enter__(self) -> "ChatStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class OllamaProvider:
    """
    Provider bridge for a local Ollama server.
    - canonical conversation <-> wire messages via MessageTranslator
    - unary calls and stream establishment run under RetryExecutor
    - streamed bodies decoded by StreamDecoder
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        *,
        timeout_ms: Optional[int] = None,
        capabilities: Optional[CapabilityRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = (endpoint or DEFAULT_ENDPOINT).rstrip("/")
        self.model = strip_model_prefix(model or DEFAULT_MODEL)
        self.timeout_ms = int(timeout_ms if timeout_ms is not None else DEFAULT_TIMEOUT_MS)
        self.capabilities = capabilities or CapabilityRegistry.builtin()
        self.translator = MessageTranslator(self.capabilities)
        self.retry = RetryExecutor(retry_policy)
        self.decoder = StreamDecoder(max_buffer_size, max_consecutive_errors)

        client_kwargs: Dict[str, Any] = {
            "base_url": self.endpoint,
            "timeout": self.timeout_ms / 1000.0,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    @classmethod
    def create(cls, *, model_name: Optional[str], provider_cfg: Dict[str, Any],
               retry_policy: Optional[RetryPolicy] = None) -> "OllamaProvider":
        # provider_cfg is already resolved (explicit > env > default) by bootstrap
        cfg = provider_cfg or {}
        capabilities = cfg.get("capabilities")
        if capabilities is None and cfg.get("capabilities_file"):
            capabilities = CapabilityRegistry.load(cfg["capabilities_file"])
        return cls(
            endpoint=cfg.get("endpoint"),
            model=model_name,
            timeout_ms=cfg.get("timeout_ms"),
            capabilities=capabilities,
            retry_policy=retry_policy,
        )

    # ---- lifecycle ----

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "OllamaProvider":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---- generation ----

    def _prepare(self, conversation: Conversation, model: Optional[str]) -> Tuple[str, List[Dict[str, Any]], Tuple[Advisory, ...]]:
        model_name = strip_model_prefix(model or self.model)
        messages = [m.to_dict() for m in self.translator.to_wire(conversation)]
        advisories = tuple(self.translator.advisories(conversation, model_name))
        return model_name, messages, advisories

    def _post_chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.client.post("/api/chat", json=payload, headers=_JSON_HEADERS)
        except httpx.HTTPError as e:
            raise _classify_transport_error(e, self.endpoint) from e

        err = _error_for_status(resp)
        if err is not None:
            raise err
        try:
            data = resp.json()
        except ValueError as e:
            raise TranslationError(f"Ollama returned a non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise TranslationError("Ollama returned a JSON body that is not an object")
        return data

    def generate(self, conversation: Conversation, model: Optional[str] = None) -> GenerationResult:
        model_name, messages, advisories = self._prepare(conversation, model)
        payload = {"model": model_name, "messages": messages, "stream": False}
        try:
            data = self.retry.run(lambda: self._post_chat(payload), describe="Ollama chat request")
            turn, done = self.translator.from_wire(data)
        except ProviderError as e:
            e.add_context(model=model_name, endpoint=self.endpoint)
            raise
        return GenerationResult(turn=turn, done=done, model=model_name, advisories=advisories)

    def _open_stream(self, payload: Dict[str, Any]) -> httpx.Response:
        request = self.client.build_request("POST", "/api/chat", json=payload, headers=_JSON_HEADERS)
        try:
            resp = self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise _classify_transport_error(e, self.endpoint) from e

        if resp.is_success:
            return resp
        try:
            resp.read()
            err = _error_for_status(resp)
        except httpx.HTTPError as e:
            err = _classify_transport_error(e, self.endpoint)
        finally:
            resp.close()
        raise err

    def generate_stream(self, conversation: Conversation, model: Optional[str] = None) -> ChatStream:
        model_name, messages, advisories = self._prepare(conversation, model)
        payload = {"model": model_name, "messages": messages, "stream": True}
        try:
            response = self.retry.run(lambda: self._open_stream(payload), describe="Ollama stream request")
        except ProviderError as e:
            e.add_context(model=model_name, endpoint=self.endpoint)
            raise
        return ChatStream(
            response,
            decoder=self.decoder,
            translator=self.translator,
            model=model_name,
            endpoint=self.endpoint,
            advisories=advisories,
        )

    # ---- ancillary operations ----

    def is_available(self) -> bool:
        try:
            resp = self.client.get("/api/version", headers=_JSON_HEADERS)
        except httpx.HTTPError as e:
            logger.debug("Ollama availability probe failed: %s", e)
            return False
        return resp.is_success

    def list_models(self) -> List[str]:
        try:
            resp = self.client.get("/api/tags", headers=_JSON_HEADERS)
        except httpx.HTTPError as e:
            raise _classify_transport_error(e, self.endpoint).add_context(endpoint=self.endpoint) from e
        err = _error_for_status(resp)
        if err is not None:
            raise err.add_context(endpoint=self.endpoint)
        try:
            data = resp.json()
        except ValueError as e:
            raise TranslationError(f"Ollama returned a non-JSON model list: {e}", endpoint=self.endpoint) from e
        if not isinstance(data, dict):
            raise TranslationError("Ollama returned a model list that is not an object", endpoint=self.endpoint)
        return [m["name"] for m in (data.get("models") or []) if isinstance(m, dict) and m.get("name")]

    def list_tool_capable_models(self) -> List[str]:
        return self.capabilities.tool_capable(self.list_models())

    def count_tokens(self, conversation: Conversation) -> int:
        return estimate_request_tokens([m.to_dict() for m in self.translator.to_wire(conversation)])

    def embed(self, texts: List[str]) -> List[List[float]]:
        raise EmbeddingUnsupportedError(
            "Embedding is not supported by the Ollama provider. "
            "Please use a different provider for embedding operations.",
            model=self.model,
            endpoint=self.endpoint,
        )
