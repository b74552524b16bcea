from __future__ import annotations
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

import yaml


@dataclass(frozen=True)
class CapabilityEntry:
    family: str
    supports_tools: bool
    supports_streaming_tools: bool = False
    min_size_b: Optional[float] = None     # below this size, tool calls are unreliable
    notes: Optional[str] = None
    tool_prompt_template: Optional[str] = None


_GEMMA3_TOOL_PROMPT = """You are a helpful assistant. When you need to use a tool, respond with:
TOOL_CALL: {
  "name": "function_name",
  "arguments": { "param": "value" }
}

Available tools:
{{tools}}

User: {{prompt}}"""

BUILTIN_ENTRIES = (
    CapabilityEntry("qwen3", True, True, notes="Excellent tool calling with built-in thinking capabilities"),
    CapabilityEntry("qwen2.5", True, True, min_size_b=1.5, notes="Good tool calling support, prefer 1.5b or larger"),
    CapabilityEntry(
        "gemma3", False, False, min_size_b=12,
        notes="No native tool support; requires custom Modelfile modifications",
        tool_prompt_template=_GEMMA3_TOOL_PROMPT,
    ),
    CapabilityEntry("gemma2", False, False, notes="No native tool support"),
    CapabilityEntry("llama3.1", True, True, notes="Good tool calling support"),
    CapabilityEntry("llama3", True, True, notes="Basic tool calling support"),
    CapabilityEntry("phi3", True, True, min_size_b=3.8, notes="Adequate tool calling for simple functions"),
)

DEFAULT_ENTRY = CapabilityEntry("default", False, False, notes="Unknown model - tool calling may not work")

_SIZE_TAG = re.compile(r"(\d+(?:\.\d+)?)([bm])\b", re.IGNORECASE)


class CapabilityRegistry:
    """
    Read-only lookup of tool-calling capability by model family.
    Build one per composition root (or per test); nothing here is global.
    """

    def __init__(self, entries: Iterable[CapabilityEntry] = (), default: CapabilityEntry = DEFAULT_ENTRY):
        self._entries: Dict[str, CapabilityEntry] = {}
        for e in entries:
            self._entries[e.family.lower()] = e
        self.default = default

    @classmethod
    def builtin(cls) -> "CapabilityRegistry":
        return cls(BUILTIN_ENTRIES)

    @classmethod
    def load(cls, path: Path, base: Optional["CapabilityRegistry"] = None) -> "CapabilityRegistry":
        """
        Merge YAML overrides over `base` (built-in table by default):

            models:
              mistral: { supports_tools: true, notes: "..." }
              gemma3:  { min_size_b: 27 }
        """
        data = yaml.safe_load(Path(path).read_text()) or {}
        base = base or cls.builtin()
        merged = dict(base._entries)
        for family, raw in (data.get("models") or {}).items():
            key = str(family).lower()
            raw = raw or {}
            current = merged.get(key) or CapabilityEntry(key, False)
            updates = {}
            for field_name in ("supports_tools", "supports_streaming_tools"):
                if field_name in raw:
                    updates[field_name] = bool(raw[field_name])
            if "min_size_b" in raw:
                updates["min_size_b"] = None if raw["min_size_b"] is None else float(raw["min_size_b"])
            for field_name in ("notes", "tool_prompt_template"):
                if field_name in raw:
                    updates[field_name] = raw[field_name]
            merged[key] = replace(current, **updates)
        return cls(merged.values(), default=base.default)

    def __iter__(self) -> Iterator[CapabilityEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, model: str) -> CapabilityEntry:
        name = (model or "").strip().lower()
        if not name:
            return self.default
        if name in self._entries:
            return self._entries[name]

        base = name.split(":", 1)[0]
        if not base:
            return self.default
        if base in self._entries:
            return self._entries[base]

        # Longest family that contains, or is contained in, the base name
        matches = [k for k in self._entries if k in base or base in k]
        if not matches:
            return self.default
        return self._entries[max(matches, key=len)]

    def supports_tools(self, model: str) -> bool:
        return self.lookup(model).supports_tools

    @staticmethod
    def size_in_billions(model: str) -> Optional[float]:
        """'qwen2.5:1.5b' -> 1.5, 'gemma3:270m' -> 0.27, 'llama3' -> None"""
        if ":" not in (model or ""):
            return None
        m = _SIZE_TAG.search(model.split(":", 1)[1])
        if not m:
            return None
        value = float(m.group(1))
        return value / 1000 if m.group(2).lower() == "m" else value

    def tool_advisory(self, model: str) -> Optional[str]:
        entry = self.lookup(model)
        if not entry.supports_tools:
            note = f" ({entry.notes})" if entry.notes else ""
            return f"Model '{model}' does not support tool calling{note}; tool calls may be ignored or malformed."
        size = self.size_in_billions(model)
        if entry.min_size_b is not None and size is not None and size < entry.min_size_b:
            return (
                f"Model '{model}' is smaller than the {entry.min_size_b:g}b recommended "
                f"for reliable tool calling in the {entry.family} family."
            )
        return None

    def recommended_tool_models(self) -> List[str]:
        return [e.family for e in self._entries.values() if e.supports_tools]

    def tool_capable(self, installed: Iterable[str]) -> List[str]:
        return [name for name in installed if self.supports_tools(name)]
