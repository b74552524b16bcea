# tests/unit/test_config_loader.py

from __future__ import annotations
import sys
from pathlib import Path
import pytest
from textwrap import dedent

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from chatbridge.config_loader import ConfigError, load_config, resolve_ollama_settings  # type: ignore


def write_yaml(p: Path, text: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(dedent(text).lstrip("\n").rstrip() + "\n", encoding="utf-8")
    return p


def test_load_config_ok(tmp_path: Path):
    cfg = write_yaml(
        tmp_path / "config" / "default.yaml",
        """
        model: { provider: OLLAMA, name: "qwen2.5:1.5b" }
        providers:
          ollama: { endpoint: "http://gpu-box:11434", capabilities_file: caps.yaml }
        retry: { max_attempts: 4, base_delay_ms: 250 }
        runtime: { stream: true }
        """,
    )
    data = load_config(cfg)
    assert data["model"]["provider"] == "ollama"   # normalised
    assert data["retry"]["max_attempts"] == 4
    # loader leaves paths as provided (bootstrap resolves them)
    assert data["providers"]["ollama"]["capabilities_file"] == "caps.yaml"


def test_load_config_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_load_config_missing_key(tmp_path: Path):
    cfg = write_yaml(
        tmp_path / "config" / "default.yaml",
        """
        model: { name: llama3 }         # missing provider
        runtime: { stream: true }
        """,
    )
    with pytest.raises(ConfigError, match="model.provider"):
        load_config(cfg)


def test_load_config_type_error(tmp_path: Path):
    cfg = write_yaml(
        tmp_path / "config" / "default.yaml",
        """
        model: { provider: ollama }
        runtime: { stream: "yes" }   # wrong type
        """,
    )
    with pytest.raises(ConfigError):
        load_config(cfg)


def test_load_config_unknown_provider(tmp_path: Path):
    cfg = write_yaml(
        tmp_path / "c.yaml",
        """
        model: { provider: bedrock }
        runtime: { stream: false }
        """,
    )
    with pytest.raises(ConfigError, match="Unknown model.provider"):
        load_config(cfg)


def test_load_config_bad_retry(tmp_path: Path):
    cfg = write_yaml(
        tmp_path / "c.yaml",
        """
        model: { provider: echo }
        retry: { max_attempts: -1 }
        runtime: { stream: false }
        """,
    )
    with pytest.raises(ConfigError, match="retry.max_attempts"):
        load_config(cfg)


def test_ollama_defaults_when_nothing_is_set():
    s = resolve_ollama_settings({}, env={})
    assert s == {"endpoint": "http://localhost:11434", "model": "qwen2.5:1.5b", "timeout_ms": 30000}


def test_env_overrides_defaults():
    env = {"OLLAMA_BASE_URL": "http://env:11434", "OLLAMA_MODEL": "llama3", "OLLAMA_TIMEOUT": "5000"}
    s = resolve_ollama_settings({}, env=env)
    assert s["endpoint"] == "http://env:11434"
    assert s["model"] == "llama3"
    assert s["timeout_ms"] == 5000


def test_config_and_explicit_beat_env():
    env = {"OLLAMA_BASE_URL": "http://env:11434", "OLLAMA_MODEL": "llama3", "OLLAMA_TIMEOUT": "5000"}
    cfg = {"endpoint": "http://cfg:11434", "timeout_ms": 1000, "capabilities_file": "x.yaml"}
    s = resolve_ollama_settings(cfg, model="qwen3", env=env)
    assert s["endpoint"] == "http://cfg:11434"
    assert s["model"] == "qwen3"
    assert s["timeout_ms"] == 1000
    assert s["capabilities_file"] == "x.yaml"   # other keys pass through

    s = resolve_ollama_settings(cfg, endpoint="http://cli:1", timeout_ms=42, env=env)
    assert s["endpoint"] == "http://cli:1"
    assert s["timeout_ms"] == 42


def test_bad_env_timeout():
    with pytest.raises(ConfigError, match="OLLAMA_TIMEOUT"):
        resolve_ollama_settings({}, env={"OLLAMA_TIMEOUT": "soon"})
