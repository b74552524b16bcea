# tests/unit/test_chat_session.py

from __future__ import annotations
import sys
from pathlib import Path

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from chatbridge.core.chat_session import ChatSession  # type: ignore
from chatbridge.core.conversation import Advisory, GenerationResult, ToolCallPart, Turn  # type: ignore


class FakeProvider:
    def __init__(self, text="hello"):
        self.model = "fake"
        self.text = text
        self.seen = []

    def generate(self, conversation, model=None):
        self.seen.append((list(conversation), model))
        return GenerationResult(turn=Turn.from_text("model", self.text), done=True, model="fake")

    def generate_stream(self, conversation, model=None):
        self.seen.append((list(conversation), model))
        # yield in two chunks to simulate streaming
        mid = len(self.text) // 2
        yield GenerationResult(turn=Turn.from_text("model", self.text[:mid]), done=False, model="fake")
        yield GenerationResult(turn=Turn.from_text("model", self.text[mid:]), done=True, model="fake")


def test_run_turn_non_stream():
    provider = FakeProvider("pong")
    cs = ChatSession(model=provider, system_prompt="sys", model_name="m1")

    out = cs.run_turn("ping")
    assert out.text == "pong"

    # history: system, user, model
    assert [t.role for t in cs.history] == ["system", "user", "model"]
    assert cs.history[1].text == "ping"
    assert cs.history[2].text == "pong"
    # provider saw the conversation up to the user turn, plus the model override
    conv, model = provider.seen[0]
    assert [t.role for t in conv] == ["system", "user"]
    assert model == "m1"


def test_run_turn_stream_persists_final():
    cs = ChatSession(model=FakeProvider("stream"), system_prompt="sys")

    chunks = list(cs.run_turn_stream("go"))
    assert "".join(chunks) == "stream"

    # final model turn persisted
    assert cs.history[-1] == Turn.from_text("model", "stream")


def test_run_turn_stream_partial_on_close():
    # Simulate user interrupt after first chunk
    class SlowProvider(FakeProvider):
        def generate_stream(self, conversation, model=None):
            yield GenerationResult(turn=Turn.from_text("model", "par"), done=False, model="fake")
            # caller will close() before we yield more
            yield GenerationResult(turn=Turn.from_text("model", "tial"), done=True, model="fake")

    cs = ChatSession(model=SlowProvider(), system_prompt="sys")

    gen = cs.run_turn_stream("go")
    assert next(gen) == "par"
    # close the generator -> ChatSession should persist partial "par"
    gen.close()

    assert cs.history[-1].text == "par"


def test_stream_keeps_tool_calls_and_advisories():
    advisory = Advisory(kind="tool_capability", model="gemma3", message="no tools")

    class ToolProvider(FakeProvider):
        def generate_stream(self, conversation, model=None):
            yield GenerationResult(turn=Turn.from_text("model", "checking"), done=False, model="gemma3",
                                   advisories=(advisory,))
            yield GenerationResult(turn=Turn(role="model", parts=(ToolCallPart("lookup", {"q": "x"}),)),
                                   done=True, model="gemma3")

    cs = ChatSession(model=ToolProvider())
    assert list(cs.run_turn_stream("go")) == ["checking"]
    assert cs.last_advisories == (advisory,)
    assert cs.history[-1].text == "checking"
    assert cs.history[-1].tool_calls == [ToolCallPart("lookup", {"q": "x"})]


def test_no_system_prompt():
    cs = ChatSession(model=FakeProvider())
    cs.run_turn("hi")
    assert [t.role for t in cs.history] == ["user", "model"]
