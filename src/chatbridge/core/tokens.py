# src/chatbridge/core/tokens.py
from __future__ import annotations
import json
from typing import Any, Dict, List

# Average characters per token for English-ish text. Coarse on purpose.
AVERAGE_TOKEN_CHARS = 4


def rough_token_count(text: str) -> int:
    # Heuristic ≈ 4 chars/token, rounded up
    if not text:
        return 0
    return max(1, (len(text) + AVERAGE_TOKEN_CHARS - 1) // AVERAGE_TOKEN_CHARS)


def estimate_request_tokens(messages: List[Dict[str, Any]]) -> int:
    """
    Approximate the token count of a serialized request.
    This is an estimate from character length only; it is not what the
    backend's tokenizer would report.
    """
    return rough_token_count(json.dumps(messages, ensure_ascii=False))
