"""Provider factory for creating ModelProvider instances by type name.

Adapter modules register themselves on import; the built-in adapters are
imported lazily the first time a type is looked up.

Key Functions:
    - create_provider: Main entry point for creating providers
    - register_provider_class: Register a provider implementation
    - get_provider_class: Get a provider class by type name

Example:
    >>> from modelrelay.providers.factory import create_provider
    >>>
    >>> provider = create_provider(
    ...     name="local_codellama",
    ...     provider_type="ollama",
    ...     model="codellama:7b",
    ...     config={"base_url": "http://gpu-box:11434"},
    ... )
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TYPE_CHECKING

from ..errors import InvalidConfiguration, ProviderError, UnknownProvider

if TYPE_CHECKING:
    from .base import ModelProvider


# Provider class registry - populated when provider modules are imported
_PROVIDER_CLASSES: Dict[str, Type["ModelProvider"]] = {}
_BUILTINS_LOADED = False


def register_provider_class(name: str, provider_class: Type["ModelProvider"]) -> None:
    """
    Register a provider implementation class.

    Called by provider modules on import to register themselves.

    Args:
        name: Provider type name (e.g., 'ollama', 'anthropic')
        provider_class: The ModelProvider subclass
    """
    _PROVIDER_CLASSES[name.lower()] = provider_class


def get_provider_class(provider_type: str) -> Type["ModelProvider"]:
    """
    Get a provider class by type name.

    Raises:
        UnknownProvider: If the provider type is not registered
    """
    _load_provider_modules()

    provider_key = provider_type.lower()
    if provider_key not in _PROVIDER_CLASSES:
        available = ", ".join(sorted(_PROVIDER_CLASSES))
        raise UnknownProvider(
            f"Unknown provider type '{provider_type}'. "
            f"Available providers: {available or 'none'}"
        )
    return _PROVIDER_CLASSES[provider_key]


def available_provider_types() -> List[str]:
    """Sorted list of registered provider type names."""
    _load_provider_modules()
    return sorted(_PROVIDER_CLASSES)


def _load_provider_modules() -> None:
    """Import the built-in adapter modules so they register themselves."""
    global _BUILTINS_LOADED
    if _BUILTINS_LOADED:
        return
    _BUILTINS_LOADED = True

    from . import anthropic, custom, huggingface, ollama, openai  # noqa: F401


def create_provider(
    name: str,
    provider_type: str,
    model: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> "ModelProvider":
    """
    Instantiate a registered provider.

    Args:
        name: Logical instance name
        provider_type: Registered type name (ollama, anthropic, openai, ...)
        model: Model identifier; the adapter default applies when None
        config: Adapter configuration
        **kwargs: Extra constructor arguments (e.g. an injected ``client``)

    Raises:
        UnknownProvider: If the type is not registered
        InvalidConfiguration: If the adapter rejects its configuration
    """
    provider_class = get_provider_class(provider_type)
    try:
        return provider_class(name, model, config or {}, **kwargs)
    except InvalidConfiguration:
        raise
    except (ProviderError, TypeError, ValueError) as e:
        raise InvalidConfiguration(
            f"Failed to create provider '{name}' of type '{provider_type}': {e}",
            provider=name,
            model=model,
            original_error=e,
        ) from e


__all__ = [
    "register_provider_class",
    "get_provider_class",
    "available_provider_types",
    "create_provider",
]
