# src/chatbridge/config_loader.py

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import yaml

from chatbridge.providers.ollama import DEFAULT_ENDPOINT, DEFAULT_MODEL, DEFAULT_TIMEOUT_MS

KNOWN_PROVIDERS = ("ollama", "openai", "echo")

ENV_ENDPOINT = "OLLAMA_BASE_URL"
ENV_MODEL = "OLLAMA_MODEL"
ENV_TIMEOUT = "OLLAMA_TIMEOUT"   # milliseconds


class ConfigError(ValueError):
    pass


def _require(d: Dict[str, Any], dotted: str, typ: type) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    if typ is bool and not isinstance(cur, bool):
        raise ConfigError(f"'{dotted}' must be a boolean")
    if typ is str and not isinstance(cur, str):
        raise ConfigError(f"'{dotted}' must be a string")
    return cur


def _optional_int(d: Dict[str, Any], dotted: str) -> None:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            return
        cur = cur[k]
    if cur is not None and (isinstance(cur, bool) or not isinstance(cur, int) or cur < 0):
        raise ConfigError(f"'{dotted}' must be a non-negative integer")


def load_config(path: Path) -> Dict[str, Any]:
    if not path or not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Config is empty or invalid YAML: {path}")

    # Validate required keys (no defaults here)
    _require(raw, "model.provider", str)
    _require(raw, "runtime.stream", bool)
    name = (raw.get("model") or {}).get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigError("'model.name' must be a string")
    _optional_int(raw, "retry.max_attempts")
    _optional_int(raw, "retry.base_delay_ms")

    # Normalise enumerations
    provider = str(raw["model"]["provider"]).lower()
    if provider not in KNOWN_PROVIDERS:
        raise ConfigError(f"Unknown model.provider '{provider}' (expected one of {', '.join(KNOWN_PROVIDERS)}).")
    raw["model"]["provider"] = provider

    providers = raw.get("providers")
    if providers is not None and not isinstance(providers, dict):
        raise ConfigError("'providers' must be a mapping")

    # Leave paths as provided; resolve them later in bootstrap/composition
    return raw


def _first(*values: Any) -> Any:
    return next((v for v in values if v not in (None, "")), None)


def resolve_ollama_settings(
    provider_cfg: Optional[Mapping[str, Any]] = None,
    *,
    endpoint: Optional[str] = None,
    model: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Effective endpoint/model/timeout for the Ollama bridge.
    Precedence: explicit argument > config file value > environment > hard default.
    """
    cfg = provider_cfg or {}
    env = os.environ if env is None else env

    env_timeout = env.get(ENV_TIMEOUT)
    if env_timeout not in (None, ""):
        try:
            env_timeout = int(env_timeout)
        except ValueError:
            raise ConfigError(f"{ENV_TIMEOUT} must be an integer number of milliseconds, got '{env_timeout}'")

    resolved = dict(cfg)
    resolved["endpoint"] = _first(endpoint, cfg.get("endpoint"), env.get(ENV_ENDPOINT), DEFAULT_ENDPOINT)
    resolved["model"] = _first(model, cfg.get("model"), env.get(ENV_MODEL), DEFAULT_MODEL)
    resolved["timeout_ms"] = int(_first(timeout_ms, cfg.get("timeout_ms"), env_timeout, DEFAULT_TIMEOUT_MS))
    return resolved
