from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from .config_loader import load_config, resolve_ollama_settings
from .core.errors import ProviderTransientError
from .providers.capabilities import CapabilityRegistry
from .providers.ollama import strip_model_prefix
from .providers.registry import ProviderRegistry, default_registry
from .resilience.retry import RetryPolicy


def build_retry_policy(cfg: Dict[str, Any]) -> RetryPolicy:
    retry_cfg = cfg.get("retry") or {}
    return RetryPolicy(
        max_attempts=int(retry_cfg.get("max_attempts", 3)),
        base_delay=int(retry_cfg.get("base_delay_ms", 1000)) / 1000.0,
    )


def build_provider(
    cfg: Dict[str, Any],
    config_path: Path,
    *,
    registry: Optional[ProviderRegistry] = None,
    model: Optional[str] = None,
    endpoint: Optional[str] = None,
    check_available: bool = False,
):
    """
    Create the configured provider. Returns (provider, warnings).
    """
    registry = registry or default_registry()
    provider_name = cfg["model"]["provider"]
    provider_cfg = dict((cfg.get("providers") or {}).get(provider_name) or {})
    model_name = model or cfg["model"].get("name")
    warnings = []

    if provider_name == "ollama":
        provider_cfg = resolve_ollama_settings(provider_cfg, endpoint=endpoint, model=model_name)
        model_name = strip_model_prefix(provider_cfg["model"])

        cap_file = provider_cfg.get("capabilities_file")
        if cap_file:
            cap_path = Path(cap_file)
            if not cap_path.is_absolute():
                # resolve relative to config dir
                cap_path = config_path.resolve().parent / cap_path
            provider_cfg["capabilities"] = CapabilityRegistry.load(cap_path)

        capabilities = provider_cfg.get("capabilities") or CapabilityRegistry.builtin()
        entry = capabilities.lookup(model_name)
        if not entry.supports_tools:
            warnings.append({
                "type": "tool_capability",
                "provider": provider_name,
                "model": model_name,
                "message": capabilities.tool_advisory(model_name),
            })

    provider = registry.create(
        provider_name,
        model_name=model_name,
        provider_cfg=provider_cfg,
        retry_policy=build_retry_policy(cfg),
    )

    if check_available and hasattr(provider, "is_available") and not provider.is_available():
        raise ProviderTransientError(
            "Ollama is not running. Please start Ollama with: ollama serve",
            endpoint=getattr(provider, "endpoint", None),
        )
    return provider, warnings


def build_app(
    config_path: Path,
    *,
    model: Optional[str] = None,
    endpoint: Optional[str] = None,
    check_available: bool = False,
) -> Dict[str, Any]:
    """
    Composition root: load .env and YAML, build the registry and the provider.
    Returns: dict with cfg, registry, provider, warnings.
    """
    load_dotenv()
    cfg = load_config(config_path)
    registry = default_registry()
    provider, warnings = build_provider(
        cfg,
        config_path,
        registry=registry,
        model=model,
        endpoint=endpoint,
        check_available=check_available,
    )
    return {
        "cfg": cfg,
        "registry": registry,
        "provider": provider,
        "warnings": warnings,
    }
