from __future__ import annotations
from typing import Protocol, Iterator, List, Optional

from .conversation import Conversation, GenerationResult


class Provider(Protocol):
    """
    Interface the core uses to talk to any generation backend.
    """

    # Surfaced for logging/headers
    model: str

    def generate(self, conversation: Conversation, model: Optional[str] = None) -> GenerationResult:
        """
        Unary call. Returns one canonical result whose turn has role 'model'.
        """
        ...

    def generate_stream(self, conversation: Conversation, model: Optional[str] = None) -> Iterator[GenerationResult]:
        """
        Streaming call. Yields partial results as they arrive; the returned
        iterator has close() to release the underlying connection early.
        """
        ...

    def count_tokens(self, conversation: Conversation) -> int:
        """Approximate token count for the request, not a tokenizer result."""
        ...

    def embed(self, texts: List[str]) -> List[List[float]]:
        ...
