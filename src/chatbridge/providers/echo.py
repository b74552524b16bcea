from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional
import time

from chatbridge.core.conversation import Conversation, GenerationResult, Turn
from chatbridge.core.errors import EmbeddingUnsupportedError
from chatbridge.core.tokens import rough_token_count

_LOREM_50 = (
    "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua Curabitur non nulla sit amet nisl "
    "tempor convallis quis ac lectus Phasellus viverra nulla ut metus varius laoreet "
    "Quisque rutrum Aenean imperdiet Etiam ultricies nisi vel augue Curabitur ullamcorper ultricies nisi"
).split()


class EchoProvider:
    """
    Offline backend that answers with a fixed lorem ipsum reply.
    Streaming yields one word per result, with a small delay to simulate tokens.
    """
    model = "echo-lorem"

    def __init__(self, token_delay: float = 0.125, words: Optional[List[str]] = None):
        self.token_delay = float(token_delay)
        self.words = list(words) if words is not None else list(_LOREM_50)

    @classmethod
    def create(cls, *, model_name: Optional[str], provider_cfg: Dict[str, Any], retry_policy=None) -> "EchoProvider":
        return cls(token_delay=(provider_cfg or {}).get("token_delay", 0.125))

    def generate(self, conversation: Conversation, model: Optional[str] = None) -> GenerationResult:
        return GenerationResult(turn=Turn.from_text("model", " ".join(self.words)), done=True, model=self.model)

    def generate_stream(self, conversation: Conversation, model: Optional[str] = None) -> Iterator[GenerationResult]:
        last_idx = len(self.words) - 1
        for i, w in enumerate(self.words):
            piece = w + ("" if i == last_idx else " ")
            yield GenerationResult(turn=Turn.from_text("model", piece), done=(i == last_idx), model=self.model)
            if self.token_delay > 0:
                time.sleep(self.token_delay)

    def count_tokens(self, conversation: Conversation) -> int:
        return sum(rough_token_count(turn.text) for turn in conversation)

    def embed(self, texts: List[str]) -> List[List[float]]:
        raise EmbeddingUnsupportedError("Embedding is not supported by the echo provider.")
