# src/chatbridge/providers/openai_adapter.py
from __future__ import annotations
import os
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI

from chatbridge.core.conversation import Conversation, GenerationResult, TextPart, Turn
from chatbridge.core.errors import ProviderClientError, ProviderError, ProviderTransientError
from chatbridge.core.tokens import estimate_request_tokens
from chatbridge.providers.translator import MessageTranslator
from chatbridge.resilience.retry import RetryExecutor, RetryPolicy

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


def _classify_openai_exception(exc: Exception) -> ProviderError:
    """
    Convert OpenAI/client exceptions into neutral provider errors.
    Avoid hard dependency on specific SDK exception classes by inspecting attributes/message.
    """
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    msg = str(exc)

    if status is not None:
        s = int(status)
        if 400 <= s < 500:
            return ProviderClientError(msg, status_code=s)
        return ProviderTransientError(msg, status_code=s)

    lower = msg.lower()
    if any(k in lower for k in ("timeout", "timed out")):
        return ProviderTransientError(msg, timeout=True)
    if any(k in lower for k in ("invalid_request_error", "unsupported", "parameter", "authentication")):
        return ProviderClientError(msg)
    return ProviderTransientError(msg)


def _message_to_wire(msg: Any) -> Dict[str, Any]:
    calls = []
    for tc in getattr(msg, "tool_calls", None) or []:
        fn = getattr(tc, "function", None)
        calls.append({
            "id": getattr(tc, "id", None),
            "function": {"name": getattr(fn, "name", None), "arguments": getattr(fn, "arguments", None)},
        })
    return {"content": getattr(msg, "content", None) or "", "tool_calls": calls}


class OpenAIAdapter:
    """
    Cloud backend over OpenAI chat completions.
    - the chat-completions message shape is the translator's wire shape
    - 'params' in provider_cfg are passed through as request arguments
    - SDK errors are mapped to ProviderClientError / ProviderTransientError
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        base_url: Optional[str] = None,
        embedding_model: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.model = model
        # RetryExecutor is the only retry layer
        client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url
        self.client = OpenAI(**client_kwargs)

        self.params = params or {}
        self.timeout = timeout
        self.embedding_model = embedding_model or DEFAULT_EMBEDDING_MODEL
        self.translator = MessageTranslator()
        self.retry = RetryExecutor(retry_policy)

    @classmethod
    def create(cls, *, model_name: Optional[str], provider_cfg: Dict[str, Any],
               retry_policy: Optional[RetryPolicy] = None) -> "OpenAIAdapter":
        cfg = provider_cfg or {}
        key_env = cfg.get("api_key_env") or "OPENAI_API_KEY"
        api_key = (os.getenv(key_env) or "").strip()
        if not api_key:
            raise ProviderClientError(f"No API key for 'openai' (set {key_env})")
        if not model_name:
            raise ProviderClientError("No model name configured for 'openai'")

        timeout_ms = cfg.get("timeout_ms")
        return cls(
            model=model_name,
            api_key=api_key,
            params=cfg.get("params") or {},
            timeout=(timeout_ms / 1000.0) if timeout_ms else None,
            base_url=cfg.get("base_url"),
            embedding_model=cfg.get("embedding_model"),
            retry_policy=retry_policy,
        )

    def _build_args(self, conversation: Conversation, model: Optional[str], *, stream: bool) -> Dict[str, Any]:
        args: Dict[str, Any] = {
            "model": model or self.model,
            "messages": [m.to_dict() for m in self.translator.to_wire(conversation)],
            "stream": stream,
            **self.params,
        }
        if self.timeout is not None:
            args["timeout"] = self.timeout
        return args

    def _create(self, args: Dict[str, Any]):
        try:
            return self.client.chat.completions.create(**args)
        except Exception as e:
            raise _classify_openai_exception(e) from e

    def generate(self, conversation: Conversation, model: Optional[str] = None) -> GenerationResult:
        args = self._build_args(conversation, model, stream=False)
        try:
            resp = self.retry.run(lambda: self._create(args), describe="OpenAI chat request")
            msg = resp.choices[0].message
            turn, done = self.translator.from_wire({"message": _message_to_wire(msg), "done": True})
        except ProviderError as e:
            e.add_context(model=args["model"], endpoint="openai")
            raise
        return GenerationResult(turn=turn, done=done, model=args["model"])

    def generate_stream(self, conversation: Conversation, model: Optional[str] = None) -> Iterator[GenerationResult]:
        args = self._build_args(conversation, model, stream=True)
        try:
            stream = self.retry.run(lambda: self._create(args), describe="OpenAI stream request")
        except ProviderError as e:
            e.add_context(model=args["model"], endpoint="openai")
            raise
        return self._iter_stream(stream, args["model"])

    def _iter_stream(self, stream, model: str) -> Iterator[GenerationResult]:
        # Tool call deltas arrive in fragments keyed by index; emit them whole at finish
        pending: Dict[int, Dict[str, Any]] = {}
        try:
            for chunk in stream:
                try:
                    choice = chunk.choices[0]
                except (AttributeError, IndexError):
                    continue
                delta = getattr(choice, "delta", None)
                finish = getattr(choice, "finish_reason", None)

                for tc in getattr(delta, "tool_calls", None) or []:
                    slot = pending.setdefault(getattr(tc, "index", 0), {"id": None, "name": "", "arguments": ""})
                    if getattr(tc, "id", None):
                        slot["id"] = tc.id
                    fn = getattr(tc, "function", None)
                    if fn is not None:
                        slot["name"] += getattr(fn, "name", None) or ""
                        slot["arguments"] += getattr(fn, "arguments", None) or ""

                piece = getattr(delta, "content", None)
                if piece or finish:
                    parts: List[Any] = [TextPart(piece)] if piece else []
                    if finish and pending:
                        wire = {"tool_calls": [
                            {"id": s["id"], "function": {"name": s["name"], "arguments": s["arguments"]}}
                            for _, s in sorted(pending.items())
                        ]}
                        parts.extend(self.translator.from_wire({"message": wire})[0].parts)
                    yield GenerationResult(turn=Turn(role="model", parts=tuple(parts)), done=bool(finish), model=model)
        except ProviderError as e:
            e.add_context(model=model, endpoint="openai")
            raise
        except Exception as e:
            err = _classify_openai_exception(e)
            err.add_context(model=model, endpoint="openai")
            raise err from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()

    def count_tokens(self, conversation: Conversation) -> int:
        return estimate_request_tokens([m.to_dict() for m in self.translator.to_wire(conversation)])

    def embed(self, texts: List[str]) -> List[List[float]]:
        try:
            resp = self.retry.run(
                lambda: self._embed(texts), describe="OpenAI embedding request"
            )
        except ProviderError as e:
            e.add_context(model=self.embedding_model, endpoint="openai")
            raise
        return [list(d.embedding) for d in resp.data]

    def _embed(self, texts: List[str]):
        try:
            return self.client.embeddings.create(model=self.embedding_model, input=texts)
        except Exception as e:
            raise _classify_openai_exception(e) from e
