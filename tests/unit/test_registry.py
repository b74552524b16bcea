# tests/unit/test_registry.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from chatbridge.providers.echo import EchoProvider  # type: ignore
from chatbridge.providers.registry import ProviderRegistry, default_registry, extract_provider  # type: ignore


def test_registry_register_and_get():
    registry = ProviderRegistry()

    @registry.register("Dummy")
    class DummyProvider:
        @classmethod
        def create(cls, *, model_name, provider_cfg=None, retry_policy=None):
            inst = cls()
            inst.model = model_name
            return inst

    # Case-insensitive lookup
    assert registry.get("dummy") == DummyProvider.create
    assert registry.get("DUMMY") == DummyProvider.create
    assert "dummy" in registry
    assert registry.create("dummy", model_name="m").model == "m"


def test_registry_unknown_raises():
    with pytest.raises(KeyError, match="not registered"):
        ProviderRegistry().get("does-not-exist")


def test_registries_do_not_share_state():
    a, b = ProviderRegistry(), ProviderRegistry()
    a.register("x", lambda **kw: "x")
    assert "x" in a
    assert "x" not in b


def test_extract_provider():
    assert extract_provider("ollama:llama3") == ("ollama", "llama3")
    assert extract_provider("ollama:model:with:colons") == ("ollama", "model:with:colons")
    assert extract_provider("llama3") == ("default", "llama3")
    assert extract_provider("") == ("default", "")


def test_create_from_model():
    registry = ProviderRegistry()
    seen = {}

    def factory(**kw):
        seen.update(kw)
        return "provider"

    registry.register("ollama", factory)
    assert registry.create_from_model("ollama:qwen2.5:1.5b", provider_cfg={}) == "provider"
    assert seen == {"model_name": "qwen2.5:1.5b", "provider_cfg": {}}
    assert registry.create_from_model("llama3") is None
    assert registry.create_from_model("unknown:model") is None


def test_default_registry_has_builtin_backends():
    registry = default_registry()
    assert set(registry.names()) == {"ollama", "openai", "echo"}
    echo = registry.create("echo", model_name=None, provider_cfg={"token_delay": 0})
    assert isinstance(echo, EchoProvider)
    assert echo.token_delay == 0
