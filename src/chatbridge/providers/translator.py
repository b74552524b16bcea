# src/chatbridge/providers/translator.py
"""
Bidirectional mapping between the canonical conversation model and the
chat wire format ({role, content, tool_calls, tool_call_id}).

The same wire shape is spoken by the Ollama chat endpoint and by
OpenAI-style chat completions, so both backends share this translator.
"""
from __future__ import annotations
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from chatbridge.core.conversation import (
    Advisory,
    Conversation,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Turn,
    uses_tools,
)
from chatbridge.core.errors import TranslationError
from chatbridge.providers.capabilities import CapabilityRegistry

logger = logging.getLogger(__name__)

_ROLE_TO_WIRE = {"model": "assistant", "system": "system", "tool-result": "tool"}


def compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def new_call_id() -> str:
    # nanosecond clock + 32 random bits
    return f"call_{time.time_ns():x}{secrets.token_hex(4)}"


@dataclass
class WireToolCall:
    id: str
    name: str
    arguments: str  # JSON text
    type: str = "function"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class WireMessage:
    role: str                      # 'system' | 'user' | 'assistant' | 'tool'
    content: str
    tool_calls: Optional[List[WireToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        return out


class MessageTranslator:
    def __init__(self, capabilities: Optional[CapabilityRegistry] = None):
        self.capabilities = capabilities

    # ---- canonical -> wire ----

    def to_wire(self, conversation: Conversation) -> List[WireMessage]:
        return [self._turn_to_wire(turn) for turn in conversation]

    def _turn_to_wire(self, turn: Turn) -> WireMessage:
        role = _ROLE_TO_WIRE.get(turn.role, "user")
        content = "\n".join(p.text for p in turn.parts if isinstance(p, TextPart))

        result = next((p for p in turn.parts if isinstance(p, ToolResultPart)), None)
        if result is not None:
            # Correlate by call id when the caller kept it, else by function name
            return WireMessage(
                role="tool",
                content=compact_json(result.result),
                tool_call_id=result.call_id or result.name,
            )

        calls = [
            WireToolCall(
                id=p.id or new_call_id(),
                name=p.name,
                arguments=compact_json(p.args or {}),
            )
            for p in turn.parts
            if isinstance(p, ToolCallPart)
        ]
        return WireMessage(role=role, content=content, tool_calls=calls or None)

    # ---- wire -> canonical ----

    def from_wire(self, record: Union[WireMessage, Mapping[str, Any]]) -> Tuple[Turn, bool]:
        """
        Map a wire message, unary response or stream record to a model Turn.
        Returns (turn, done).
        """
        if isinstance(record, WireMessage):
            message: Mapping[str, Any] = record.to_dict()
            done = True
        else:
            message = record.get("message") or {}
            done = bool(record.get("done", False))
            if not isinstance(message, Mapping):
                raise TranslationError(f"Response 'message' must be an object, got {type(message).__name__}")

        parts: List[Any] = []
        content = message.get("content")
        if content:
            parts.append(TextPart(str(content)))

        tool_calls = message.get("tool_calls") or []
        if not isinstance(tool_calls, list):
            raise TranslationError(f"'tool_calls' must be a list, got {type(tool_calls).__name__}")
        for raw in tool_calls:
            parts.append(self._tool_call_from_wire(raw))

        return Turn(role="model", parts=tuple(parts)), done

    @staticmethod
    def _tool_call_from_wire(raw: Any) -> ToolCallPart:
        if not isinstance(raw, Mapping):
            raise TranslationError(f"Tool call must be an object: {raw!r}")
        fn = raw.get("function") or {}
        if not isinstance(fn, Mapping):
            raise TranslationError(f"Tool call 'function' must be an object: {raw!r}")
        name = fn.get("name")
        if not name:
            raise TranslationError(f"Tool call without a function name: {raw!r}")

        arguments = fn.get("arguments")
        if arguments is None or arguments == "":
            args: Any = {}
        elif isinstance(arguments, str):
            try:
                args = json.loads(arguments)
            except ValueError as e:
                raise TranslationError(f"Malformed arguments for tool call '{name}': {e}") from e
        else:
            args = arguments

        if not isinstance(args, Mapping):
            raise TranslationError(f"Arguments for tool call '{name}' must be a JSON object")
        return ToolCallPart(name=str(name), args=dict(args), id=raw.get("id"))

    # ---- advisories ----

    def advisories(self, conversation: Conversation, model: str) -> List[Advisory]:
        if self.capabilities is None or not uses_tools(conversation):
            return []
        message = self.capabilities.tool_advisory(model)
        if message is None:
            return []
        logger.warning(message)
        return [Advisory(kind="tool_capability", model=model, message=message)]
