# src/chatbridge/core/conversation.py
"""
Canonical conversation model shared by every backend.

A Conversation is an ordered sequence of Turns. Parts form a closed union:
TextPart, ToolCallPart and ToolResultPart. Anything else coming from an
upstream payload is rejected by `part_from_dict`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

Role = str  # 'system' | 'user' | 'model' | 'tool-result'

ROLES = ("system", "user", "model", "tool-result")


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCallPart:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass(frozen=True)
class ToolResultPart:
    name: str
    result: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


Part = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass(frozen=True)
class Turn:
    role: Role
    parts: Tuple[Part, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "parts", tuple(self.parts))
        for p in self.parts:
            if not isinstance(p, (TextPart, ToolCallPart, ToolResultPart)):
                raise ValueError(f"Unsupported part type: {type(p).__name__}")
        has_result = any(isinstance(p, ToolResultPart) for p in self.parts)
        if has_result or self.role == "tool-result":
            if len(self.parts) != 1 or not isinstance(self.parts[0], ToolResultPart):
                raise ValueError("A tool-result turn must hold exactly one tool-result part")

    @classmethod
    def from_text(cls, role: Role, text: str) -> "Turn":
        return cls(role=role, parts=(TextPart(text),))

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]


Conversation = Sequence[Turn]


@dataclass(frozen=True)
class Advisory:
    """Non-fatal notice surfaced to the caller (e.g. model lacks tool support)."""
    kind: str
    model: str
    message: str


@dataclass(frozen=True)
class GenerationResult:
    turn: Turn
    done: bool
    model: str
    advisories: Tuple[Advisory, ...] = ()

    @property
    def text(self) -> str:
        return self.turn.text


def uses_tools(conversation: Conversation) -> bool:
    return any(
        isinstance(p, (ToolCallPart, ToolResultPart))
        for turn in conversation
        for p in turn.parts
    )


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} must be an object, got {type(value).__name__}")
    return dict(value)


def part_from_dict(raw: Mapping[str, Any]) -> Part:
    """
    Parse one upstream part. Accepts:
      {"text": "..."}
      {"function_call": {"name", "args", "id"?}}      (or "functionCall")
      {"function_response": {"name", "response", "id"?}}  (or "functionResponse")
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"Part must be an object, got {type(raw).__name__}")

    if "text" in raw:
        text = raw["text"]
        if not isinstance(text, str):
            raise ValueError("Text part must hold a string")
        return TextPart(text)

    call = raw.get("function_call", raw.get("functionCall"))
    if call is not None:
        call = _mapping(call, "function_call")
        if not call.get("name"):
            raise ValueError("function_call requires a name")
        return ToolCallPart(
            name=str(call["name"]),
            args=_mapping(call.get("args"), "function_call.args"),
            id=call.get("id"),
        )

    resp = raw.get("function_response", raw.get("functionResponse"))
    if resp is not None:
        resp = _mapping(resp, "function_response")
        if not resp.get("name"):
            raise ValueError("function_response requires a name")
        return ToolResultPart(
            name=str(resp["name"]),
            result=_mapping(resp.get("response"), "function_response.response"),
            call_id=resp.get("id"),
        )

    raise ValueError(f"Unrecognised part shape with keys {sorted(raw)}")


def turn_from_dict(raw: Mapping[str, Any]) -> Turn:
    role = str(raw.get("role") or "user")
    parts = [part_from_dict(p) for p in (raw.get("parts") or [])]
    return Turn(role=role, parts=tuple(parts))
