from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple

# A factory builds a provider from keyword arguments:
#   factory(model_name=..., provider_cfg=..., retry_policy=...)
ProviderFactory = Callable[..., Any]


class ProviderRegistry:
    """
    Maps backend names to provider factories. Owned by the composition root;
    build a fresh one per app (or per test) instead of sharing module state.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: Optional[ProviderFactory] = None):
        """Register directly, or use as a decorator on a class with a create() classmethod."""
        key = name.lower()
        if factory is not None:
            self._factories[key] = factory
            return factory

        def deco(klass):
            self._factories[key] = klass.create
            return klass
        return deco

    def get(self, name: str) -> ProviderFactory:
        key = name.lower()
        if key not in self._factories:
            raise KeyError(f"Provider '{name}' not registered")
        return self._factories[key]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories

    def names(self) -> List[str]:
        return list(self._factories)

    def create(self, name: str, **kwargs: Any) -> Any:
        return self.get(name)(**kwargs)

    def create_from_model(self, model: str, **kwargs: Any) -> Optional[Any]:
        """
        'ollama:llama3' -> the ollama provider for 'llama3'.
        Returns None when the string has no registered provider prefix.
        """
        provider, model_name = extract_provider(model)
        if provider == "default" or provider not in self:
            return None
        return self.create(provider, model_name=model_name, **kwargs)


def extract_provider(model: str) -> Tuple[str, str]:
    """
    Split "provider:model" on the first colon.
    'ollama:model:with:colons' -> ('ollama', 'model:with:colons'); 'llama3' -> ('default', 'llama3')
    """
    if not model or not isinstance(model, str):
        return "default", model or ""
    provider, sep, name = model.partition(":")
    if not sep:
        return "default", model
    return provider, name


def default_registry() -> ProviderRegistry:
    """Registry with the built-in backends."""
    from chatbridge.providers.echo import EchoProvider
    from chatbridge.providers.ollama import OllamaProvider
    from chatbridge.providers.openai_adapter import OpenAIAdapter

    registry = ProviderRegistry()
    registry.register("ollama", OllamaProvider.create)
    registry.register("openai", OpenAIAdapter.create)
    registry.register("echo", EchoProvider.create)
    return registry
