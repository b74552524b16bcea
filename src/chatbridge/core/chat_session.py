from __future__ import annotations
from typing import Iterator, List, Optional, Tuple

from .conversation import Advisory, GenerationResult, TextPart, Turn
from .ports import Provider


class ChatSession:
    """
    Conversation history for one interactive session.
    The provider only reads `history`; the session appends user and model turns.
    """

    def __init__(self, model: Provider, system_prompt: Optional[str] = None, model_name: Optional[str] = None):
        self.model = model
        self.model_name = model_name
        self.history: List[Turn] = []
        self.last_advisories: Tuple[Advisory, ...] = ()
        if system_prompt:
            self.history.append(Turn.from_text("system", system_prompt))

    def run_turn(self, user_text: str) -> GenerationResult:
        self.history.append(Turn.from_text("user", user_text))
        result = self.model.generate(list(self.history), self.model_name)
        self.last_advisories = result.advisories
        self.history.append(result.turn)
        return result

    def run_turn_stream(self, user_text: str) -> Iterator[str]:
        self.history.append(Turn.from_text("user", user_text))
        stream = self.model.generate_stream(list(self.history), self.model_name)
        self.last_advisories = tuple(getattr(stream, "advisories", ()))
        partial: List[str] = []
        calls = []

        def gen():
            try:
                for result in stream:
                    if result.advisories:
                        self.last_advisories = result.advisories
                    calls.extend(result.turn.tool_calls)
                    piece = result.turn.text
                    if piece:
                        partial.append(piece)
                        yield piece
            finally:
                close = getattr(stream, "close", None)
                if callable(close):
                    close()
                if partial or calls:
                    text = [TextPart("".join(partial))] if partial else []
                    self.history.append(Turn(role="model", parts=tuple(text + calls)))
        return gen()
