from __future__ import annotations
from typing import Dict, List, Type, Callable
from importlib import import_module

_BUILTIN_MODULES = (
    "askai.providers.openai_adapter",
    "askai.providers.anthropic_adapter",
    "askai.providers.google_adapter",
    "askai.providers.ollama_adapter",
    "askai.providers.deepseek_adapter",
    "askai.providers.subprocess_adapter",
)


class ProviderRegistry:
    _classes: Dict[str, Type] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[Type], Type]:
        name = name.lower()
        def deco(klass: Type) -> Type:
            cls._classes[name] = klass
            klass.name = name
            return klass
        return deco

    @classmethod
    def get(cls, name: str) -> Type:
        key = name.lower()
        if key not in cls._classes:
            raise KeyError(f"Provider '{name}' not registered")
        return cls._classes[key]

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls._classes)

    @classmethod
    def ensure_imports(cls) -> None:
        """
        Import built-in adapters so their @register decorators run.
        Call once before get().
        """
        for module in _BUILTIN_MODULES:
            import_module(module)
