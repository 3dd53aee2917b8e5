"""Configuration loading and registry construction.

Providers are declared in a JSON or TOML file (``.modelrelay.json`` by
default) and can be overridden per provider with
``MODELRELAY_PROVIDER_{ID}_{KEY}`` environment variables:

    {
      "models": {
        "default": "claude",
        "providers": {
          "ollama": {"type": "ollama", "model": "codellama:7b"},
          "claude": {"type": "anthropic", "api_key": "${ANTHROPIC_API_KEY}"},
          "resilient": {"type": "fallback", "members": ["claude", "ollama"]}
        }
      }
    }

Credential values may be literal text, ``${VAR}`` references to the
environment (a missing variable becomes an empty string) or
``secret:<name>`` references looked up through a :class:`SecretResolver`.

Strategy entries (``fallback``, ``load_balancer``, ``committee``,
``complexity``, ``task_complexity``) refer to other provider ids and are
built after the adapters they depend on.
"""

from __future__ import annotations

import json
import os
import re
import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from .errors import InvalidConfiguration, UnknownProvider
from .observability.logging import get_logger
from .providers.base import ModelProvider
from .providers.factory import create_provider, get_provider_class
from .registry import BASELINE_PROVIDER_ID, ProviderRegistry
from .strategies import Committee, ComplexityRouter, FallbackProvider, LoadBalancer, TaskComplexityRouter
from .strategies.complexity import DEFAULT_COMPLEXITY_THRESHOLD

logger = get_logger(__name__)

DEFAULT_CONFIG_NAME = ".modelrelay.json"

# Environment variable prefix
ENV_PREFIX = "MODELRELAY_PROVIDER_"

SECRET_PREFIX = "secret:"
STRATEGY_TYPES = frozenset({"fallback", "load_balancer", "committee", "complexity", "task_complexity"})
RESERVED_KEYS = frozenset({"type", "model", "enabled"})

_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")

# Keys accepted in camelCase for compatibility with hand-written config files
_KEY_ALIASES = {
    "baseURL": "base_url",
    "baseUrl": "base_url",
    "apiKey": "api_key",
    "defaultModel": "model",
    "maxContextTokens": "max_context_tokens",
    "minAgreement": "min_agreement",
}


class _StrategyCycle(InvalidConfiguration):
    """A strategy reaches itself through its members."""


class SecretResolver(ABC):
    """Looks up ``secret:<name>`` credential references."""

    @abstractmethod
    def resolve(self, reference: str) -> str:
        """
        Return the secret stored under ``reference``.

        Raises:
            InvalidConfiguration: If the secret does not exist
        """


class EnvironmentSecretResolver(SecretResolver):
    """Resolve secrets from environment variables, optionally prefixed."""

    def __init__(self, prefix: str = "", environ: Optional[Mapping[str, str]] = None):
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def resolve(self, reference: str) -> str:
        key = f"{self.prefix}{reference}"
        if key not in self._environ:
            raise InvalidConfiguration(f"Secret '{reference}' not found (expected environment variable {key})")
        return self._environ[key]


class MappingSecretResolver(SecretResolver):
    """Resolve secrets from an in-memory mapping."""

    def __init__(self, secrets: Mapping[str, str]):
        self._secrets = dict(secrets)

    def resolve(self, reference: str) -> str:
        if reference not in self._secrets:
            raise InvalidConfiguration(f"Secret '{reference}' not found")
        return self._secrets[reference]


@dataclass
class RelayConfig:
    """Parsed configuration: provider entries in declaration order plus the default id."""

    providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    default: Optional[str] = None
    source: Optional[Path] = None


def infer_provider_type(provider_id: str) -> str:
    """Guess an adapter type from a provider id when the entry omits it."""
    key = provider_id.lower()
    if key == "ollama":
        return "ollama"
    if key in ("claude", "anthropic"):
        return "anthropic"
    if key == "openai":
        return "openai"
    return "custom"


def interpolate_env(value: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Replace ``${VAR}`` references; unknown variables become empty strings."""
    env = environ if environ is not None else os.environ
    return _ENV_REFERENCE.sub(lambda match: env.get(match.group(1), ""), value)


def resolve_credential(
    value: Any,
    resolver: Optional[SecretResolver] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Any:
    """
    Resolve one credential reference.

    Args:
        value: Literal text, ``${VAR}`` template or ``secret:<name>``
        resolver: Used for ``secret:`` references
        environ: Environment used for interpolation (defaults to os.environ)

    Raises:
        InvalidConfiguration: For a ``secret:`` reference without a resolver
    """
    if not isinstance(value, str):
        return value
    if value.startswith(SECRET_PREFIX):
        if resolver is None:
            raise InvalidConfiguration(
                f"Credential reference '{value}' needs a secret resolver, but none was configured"
            )
        return resolver.resolve(value[len(SECRET_PREFIX):])
    return interpolate_env(value, environ)


def _normalize_entry(provider_id: str, entry: Any) -> Dict[str, Any]:
    if not isinstance(entry, Mapping):
        raise InvalidConfiguration(f"Provider '{provider_id}' must be an object, got {type(entry).__name__}")
    return {_KEY_ALIASES.get(key, key): value for key, value in entry.items()}


def _env_key(provider_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", provider_id).upper()


def load_env_overrides(provider_id: str, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Collect ``MODELRELAY_PROVIDER_{ID}_{KEY}`` overrides for one provider.

    Returns:
        Configuration dictionary with keys normalized to lowercase
    """
    env = environ if environ is not None else os.environ
    prefix = f"{ENV_PREFIX}{_env_key(provider_id)}_"

    overrides: Dict[str, Any] = {}
    for key, value in env.items():
        if key.startswith(prefix):
            overrides[key[len(prefix):].lower()] = value
    return overrides


def parse_config(
    data: Mapping[str, Any],
    *,
    environ: Optional[Mapping[str, str]] = None,
    source: Optional[Path] = None,
) -> RelayConfig:
    """
    Validate a raw configuration document and apply environment overrides.

    Raises:
        InvalidConfiguration: If the document does not have the expected shape
    """
    models = data.get("models", {})
    if not isinstance(models, Mapping):
        raise InvalidConfiguration("'models' must be an object")
    raw_providers = models.get("providers", {})
    if not isinstance(raw_providers, Mapping):
        raise InvalidConfiguration("'models.providers' must be an object")
    default = models.get("default")
    if default is not None and not isinstance(default, str):
        raise InvalidConfiguration("'models.default' must be a provider id")

    providers: Dict[str, Dict[str, Any]] = {}
    for provider_id, entry in raw_providers.items():
        merged = _normalize_entry(provider_id, entry)
        merged.update(load_env_overrides(provider_id, environ))
        providers[provider_id] = merged

    return RelayConfig(providers=providers, default=default, source=source)


def load_config(
    path: Optional[Union[str, Path]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> RelayConfig:
    """
    Load configuration from a JSON or TOML file.

    Without an explicit ``path`` the loader looks for ``.modelrelay.json`` in
    the working directory and returns an empty configuration if it is absent.

    Raises:
        InvalidConfiguration: If an explicit path is missing or the file
            cannot be parsed
    """
    explicit = path is not None
    config_path = Path(path) if explicit else Path.cwd() / DEFAULT_CONFIG_NAME

    if not config_path.exists():
        if explicit:
            raise InvalidConfiguration(f"Config file not found: {config_path}")
        logger.warning(f"Config file not found at {config_path}, using defaults.")
        return RelayConfig()

    try:
        text = config_path.read_text(encoding="utf-8")
        if config_path.suffix == ".toml":
            data = tomllib.loads(text)
        else:
            data = json.loads(text)
    except (OSError, ValueError) as e:
        raise InvalidConfiguration(f"Failed to read config file {config_path}: {e}", original_error=e) from e

    if not isinstance(data, Mapping):
        raise InvalidConfiguration(f"Config file {config_path} must contain an object")
    return parse_config(data, environ=environ, source=config_path)


def _is_enabled(entry: Mapping[str, Any]) -> bool:
    enabled = entry.get("enabled", True)
    if isinstance(enabled, str):
        return enabled.strip().lower() not in ("0", "false", "no", "off")
    return bool(enabled)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value)


class _RegistryBuilder:
    """Builds adapters first, then strategies in dependency order."""

    def __init__(
        self,
        config: RelayConfig,
        resolver: Optional[SecretResolver],
        registry: ProviderRegistry,
        environ: Optional[Mapping[str, str]],
    ):
        self.config = config
        self.resolver = resolver
        self.registry = registry
        self.environ = environ
        self._strategies: Dict[str, Dict[str, Any]] = {}
        self._building: Set[str] = set()
        self._skipped: Set[str] = set()

    def build(self) -> ProviderRegistry:
        for provider_id, entry in self.config.providers.items():
            if not _is_enabled(entry):
                logger.info(f"Provider '{provider_id}' is disabled, skipping")
                self._skipped.add(provider_id)
                continue
            provider_type = self._provider_type(provider_id, entry)
            if provider_type in STRATEGY_TYPES:
                self._strategies[provider_id] = entry
                continue
            provider = self._build_adapter(provider_id, provider_type, entry)
            if provider is None:
                self._skipped.add(provider_id)
            else:
                self.registry.register(provider_id, provider)

        for provider_id in self._strategies:
            self._resolve(provider_id)

        if self.config.default:
            try:
                self.registry.set_default(self.config.default)
            except UnknownProvider as e:
                logger.warning(f"Could not set default provider to {self.config.default}: {e}")
        return self.registry

    @staticmethod
    def _provider_type(provider_id: str, entry: Mapping[str, Any]) -> str:
        declared = entry.get("type")
        # "local"/"api" describe locality, not an adapter
        if not declared or declared in ("local", "api"):
            return infer_provider_type(provider_id)
        return str(declared).lower()

    def _build_adapter(
        self,
        provider_id: str,
        provider_type: str,
        entry: Mapping[str, Any],
    ) -> Optional[ModelProvider]:
        try:
            provider_class = get_provider_class(provider_type)
        except UnknownProvider as e:
            raise InvalidConfiguration(f"Provider '{provider_id}': {e}", provider=provider_id) from e

        adapter_config: Dict[str, Any] = {}
        for key, value in entry.items():
            if key in RESERVED_KEYS:
                continue
            if key == "api_key":
                adapter_config[key] = resolve_credential(value, self.resolver, self.environ)
            elif isinstance(value, str):
                adapter_config[key] = interpolate_env(value, self.environ)
            else:
                adapter_config[key] = value

        if provider_class.credential_required and not adapter_config.get("api_key"):
            logger.warning(f"Provider '{provider_id}' ({provider_type}) has no credential, skipping")
            return None
        if provider_type == "custom" and not adapter_config.get("base_url"):
            logger.warning(f"Provider '{provider_id}' has no base_url, skipping")
            return None

        return create_provider(provider_id, provider_type, entry.get("model"), adapter_config)

    def _resolve(self, provider_id: str) -> Optional[ModelProvider]:
        """Return the provider for ``provider_id``, building strategies on demand."""
        existing = self.registry.get(provider_id)
        if existing is not None:
            return existing
        if provider_id in self._skipped or provider_id not in self._strategies:
            return None
        if provider_id in self._building:
            raise _StrategyCycle(f"Strategy '{provider_id}' refers to itself through its members")

        self._building.add(provider_id)
        try:
            strategy = self._build_strategy(provider_id, self._strategies[provider_id])
        except _StrategyCycle:
            raise
        except InvalidConfiguration as e:
            logger.warning(f"Strategy '{provider_id}' could not be built, skipping: {e}")
            strategy = None
        finally:
            self._building.discard(provider_id)

        if strategy is None:
            self._skipped.add(provider_id)
        else:
            self.registry.register(provider_id, strategy)
        return strategy

    def _members(self, provider_id: str, member_ids: List[Any]) -> List[ModelProvider]:
        members = []
        for member_id in member_ids:
            member = self._resolve(str(member_id))
            if member is None:
                logger.warning(f"Strategy '{provider_id}' skips unavailable member '{member_id}'")
                continue
            members.append(member)
        return members

    def _build_strategy(self, provider_id: str, entry: Mapping[str, Any]) -> Optional[ModelProvider]:
        strategy_type = self._provider_type(provider_id, entry)

        if strategy_type in ("complexity", "task_complexity"):
            small = self._resolve(str(entry.get("small", "")))
            large = self._resolve(str(entry.get("large", "")))
            if small is None or large is None:
                raise InvalidConfiguration(f"Strategy '{provider_id}' needs registered 'small' and 'large' providers")
            if strategy_type == "task_complexity":
                threshold = float(entry.get("threshold", DEFAULT_COMPLEXITY_THRESHOLD))
                return TaskComplexityRouter(small, large, threshold=threshold, name=provider_id)
            return ComplexityRouter(small, large, threshold=int(entry.get("threshold", 1000)), name=provider_id)

        members = self._members(provider_id, _as_list(entry.get("members")))
        if strategy_type == "fallback":
            return FallbackProvider(members, name=provider_id)
        if strategy_type == "load_balancer":
            return LoadBalancer(members, name=provider_id)

        judge = None
        if entry.get("judge"):
            judge = self._resolve(str(entry["judge"]))
            if judge is None:
                logger.warning(f"Committee '{provider_id}' judge '{entry['judge']}' is not available")
        weights = entry.get("weights")
        voting = entry.get("voting", "majority")
        return Committee(
            members,
            voting=None if voting in (None, "none", "") else voting,
            weights=[float(w) for w in _as_list(weights)] if weights is not None else None,
            min_agreement=float(entry.get("min_agreement", 0.5)),
            judge=judge,
            name=provider_id,
        )


def build_registry(
    config: RelayConfig,
    resolver: Optional[SecretResolver] = None,
    registry: Optional[ProviderRegistry] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ProviderRegistry:
    """
    Instantiate every enabled provider in ``config`` into a registry.

    Adapters whose required credential resolves to an empty value are
    skipped with a warning, as are strategies whose members cannot be
    satisfied. An unknown default id logs a warning and leaves the registry
    on its baseline default.

    Args:
        config: Parsed configuration
        resolver: Resolver for ``secret:`` credential references
        registry: Registry to fill (a new one is created when omitted)
        environ: Environment for ``${VAR}`` interpolation

    Raises:
        InvalidConfiguration: For unknown adapter types, unresolvable
            secrets, strategy cycles or adapters rejecting their config
    """
    registry = registry if registry is not None else ProviderRegistry()
    return _RegistryBuilder(config, resolver, registry, environ).build()


def load_registry(
    path: Optional[Union[str, Path]] = None,
    resolver: Optional[SecretResolver] = None,
) -> ProviderRegistry:
    """
    Load a config file and build its registry in one step.

    The baseline Ollama adapter is registered with its defaults unless the
    file declares (or disables) an 'ollama' entry itself.
    """
    config = load_config(path)
    registry = build_registry(config, resolver)
    if BASELINE_PROVIDER_ID not in config.providers and BASELINE_PROVIDER_ID not in registry:
        registry.register(BASELINE_PROVIDER_ID, create_provider(BASELINE_PROVIDER_ID, "ollama"))
    return registry


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "ENV_PREFIX",
    "STRATEGY_TYPES",
    "SecretResolver",
    "EnvironmentSecretResolver",
    "MappingSecretResolver",
    "RelayConfig",
    "infer_provider_type",
    "interpolate_env",
    "resolve_credential",
    "load_env_overrides",
    "parse_config",
    "load_config",
    "build_registry",
    "load_registry",
]
