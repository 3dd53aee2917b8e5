"""Tests for configuration loading and registry construction."""

import json
import logging

import pytest

from modelrelay.config import (
    EnvironmentSecretResolver,
    MappingSecretResolver,
    RelayConfig,
    build_registry,
    infer_provider_type,
    interpolate_env,
    load_config,
    load_env_overrides,
    load_registry,
    parse_config,
    resolve_credential,
)
from modelrelay.errors import InvalidConfiguration
from modelrelay.providers import AnthropicProvider, OllamaProvider, OpenAICompatibleProvider
from modelrelay.strategies import Committee, ComplexityRouter, FallbackProvider, LoadBalancer, TaskComplexityRouter


def make_config(providers, default=None, environ=None):
    return parse_config({"models": {"default": default, "providers": providers}}, environ=environ or {})


class TestHelpers:
    def test_infer_provider_type(self):
        assert infer_provider_type("ollama") == "ollama"
        assert infer_provider_type("Claude") == "anthropic"
        assert infer_provider_type("openai") == "openai"
        assert infer_provider_type("lmstudio") == "custom"

    def test_interpolate_env(self):
        environ = {"HOST": "gpu-box"}
        assert interpolate_env("http://${HOST}:11434", environ) == "http://gpu-box:11434"
        assert interpolate_env("${MISSING}", environ) == ""

    def test_resolve_credential_literal_and_env(self):
        assert resolve_credential("sk-literal", environ={}) == "sk-literal"
        assert resolve_credential("${KEY}", environ={"KEY": "sk-env"}) == "sk-env"

    def test_resolve_credential_secret(self):
        resolver = MappingSecretResolver({"anthropic": "sk-secret"})
        assert resolve_credential("secret:anthropic", resolver) == "sk-secret"

    def test_secret_without_resolver(self):
        with pytest.raises(InvalidConfiguration, match="secret resolver"):
            resolve_credential("secret:anthropic")

    def test_missing_secret(self):
        with pytest.raises(InvalidConfiguration, match="not found"):
            resolve_credential("secret:nope", MappingSecretResolver({}))

    def test_environment_secret_resolver(self):
        resolver = EnvironmentSecretResolver(prefix="VAULT_", environ={"VAULT_CLAUDE": "sk-vault"})
        assert resolver.resolve("CLAUDE") == "sk-vault"
        with pytest.raises(InvalidConfiguration):
            resolver.resolve("OPENAI")

    def test_load_env_overrides(self):
        environ = {
            "MODELRELAY_PROVIDER_LOCAL_LLM_BASE_URL": "http://localhost:1234",
            "MODELRELAY_PROVIDER_LOCAL_LLM_MODEL": "qwen",
            "MODELRELAY_PROVIDER_OTHER_MODEL": "ignored",
        }
        assert load_env_overrides("local-llm", environ) == {
            "base_url": "http://localhost:1234",
            "model": "qwen",
        }


class TestParseConfig:
    def test_env_overrides_win(self):
        config = make_config(
            {"ollama": {"type": "ollama", "model": "codellama:7b"}},
            environ={"MODELRELAY_PROVIDER_OLLAMA_MODEL": "llama3:8b"},
        )
        assert config.providers["ollama"]["model"] == "llama3:8b"

    def test_camel_case_keys_normalized(self):
        config = make_config({"lm": {"type": "custom", "baseURL": "http://localhost:1234", "apiKey": "x"}})
        assert config.providers["lm"]["base_url"] == "http://localhost:1234"
        assert config.providers["lm"]["api_key"] == "x"

    def test_invalid_shapes(self):
        with pytest.raises(InvalidConfiguration):
            parse_config({"models": []})
        with pytest.raises(InvalidConfiguration):
            parse_config({"models": {"providers": {"ollama": "yes"}}}, environ={})
        with pytest.raises(InvalidConfiguration):
            parse_config({"models": {"default": 3}})


class TestLoadConfig:
    def test_json_file(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"models": {"default": "ollama", "providers": {"ollama": {}}}}))

        config = load_config(path, environ={})
        assert config.default == "ollama"
        assert config.source == path
        assert list(config.providers) == ["ollama"]

    def test_toml_file(self, tmp_path):
        path = tmp_path / "relay.toml"
        path.write_text(
            '[models]\ndefault = "claude"\n\n'
            '[models.providers.claude]\ntype = "anthropic"\napi_key = "sk-test"\n'
        )

        config = load_config(path, environ={})
        assert config.default == "claude"
        assert config.providers["claude"]["api_key"] == "sk-test"

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(InvalidConfiguration, match="not found"):
            load_config(tmp_path / "missing.json")

    def test_default_path_missing_returns_empty(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={})
        assert config.providers == {}
        assert config.default is None

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("{not json")
        with pytest.raises(InvalidConfiguration, match="Failed to read"):
            load_config(path)


class TestBuildRegistry:
    def test_builds_adapters_and_default(self):
        config = make_config(
            {
                "ollama": {"type": "ollama", "model": "codellama:7b", "base_url": "${OLLAMA_HOST}"},
                "claude": {"type": "anthropic", "api_key": "${ANTHROPIC_API_KEY}"},
            },
            default="claude",
        )
        environ = {"OLLAMA_HOST": "http://gpu-box:11434", "ANTHROPIC_API_KEY": "sk-ant"}

        registry = build_registry(config, environ=environ)

        ollama = registry.get_required("ollama")
        claude = registry.get_required("claude")
        assert isinstance(ollama, OllamaProvider)
        assert ollama.base_url == "http://gpu-box:11434"
        assert ollama.model == "codellama:7b"
        assert isinstance(claude, AnthropicProvider)
        assert claude.api_key == "sk-ant"
        assert registry.get_default() is claude

    def test_missing_credential_skipped(self, caplog):
        config = make_config(
            {"claude": {"type": "anthropic", "api_key": "${ANTHROPIC_API_KEY}"}, "ollama": {}}
        )
        with caplog.at_level(logging.WARNING):
            registry = build_registry(config, environ={})

        assert "claude" not in registry
        assert "ollama" in registry
        assert "has no credential" in caplog.text

    def test_secret_reference(self):
        config = make_config({"gpt": {"type": "openai", "api_key": "secret:openai"}})
        registry = build_registry(config, MappingSecretResolver({"openai": "sk-openai"}), environ={})
        assert registry.get_required("gpt").api_key == "sk-openai"

    def test_disabled_entry_skipped(self):
        config = make_config({"ollama": {"enabled": "false"}, "lm": {"type": "custom", "base_url": "http://localhost:1234"}})
        registry = build_registry(config, environ={})
        assert registry.ids() == ["lm"]
        assert isinstance(registry.get("lm"), OpenAICompatibleProvider)

    def test_locality_type_inferred_from_id(self):
        config = make_config({"ollama": {"type": "local"}})
        registry = build_registry(config, environ={})
        assert isinstance(registry.get("ollama"), OllamaProvider)

    def test_custom_without_base_url_skipped(self):
        registry = build_registry(make_config({"lm": {"type": "custom"}}), environ={})
        assert "lm" not in registry

    def test_unknown_type(self):
        with pytest.raises(InvalidConfiguration, match="banana"):
            build_registry(make_config({"weird": {"type": "banana"}}), environ={})

    def test_unknown_default_keeps_registry(self, caplog):
        config = make_config({"ollama": {}}, default="claude")
        with caplog.at_level(logging.WARNING):
            registry = build_registry(config, environ={})

        assert registry.default_id is None
        assert isinstance(registry.get_default(), OllamaProvider)
        assert "Could not set default provider" in caplog.text

    def test_strategies_built_over_members(self):
        config = make_config(
            {
                "resilient": {"type": "fallback", "members": ["claude", "ollama"]},
                "ollama": {},
                "claude": {"type": "anthropic", "api_key": "sk-ant"},
                "spread": {"type": "load_balancer", "members": "ollama, claude"},
                "panel": {"type": "committee", "members": ["claude", "ollama"], "voting": "weighted", "weights": [2, 1]},
                "router": {"type": "complexity", "small": "ollama", "large": "resilient", "threshold": 200},
            },
            default="resilient",
        )
        registry = build_registry(config, environ={})

        resilient = registry.get_required("resilient")
        assert isinstance(resilient, FallbackProvider)
        assert [p.name for p in resilient.providers] == ["claude", "ollama"]
        assert isinstance(registry.get("spread"), LoadBalancer)

        panel = registry.get_required("panel")
        assert isinstance(panel, Committee)
        assert panel.weights == [2.0, 1.0]

        router = registry.get_required("router")
        assert isinstance(router, ComplexityRouter)
        assert router.large is resilient
        assert router.threshold == 200
        assert registry.get_default() is resilient

    def test_task_complexity_router_from_config(self):
        config = make_config(
            {
                "ollama": {},
                "claude": {"type": "anthropic", "api_key": "sk-ant"},
                "triage": {"type": "task_complexity", "small": "ollama", "large": "claude", "threshold": "0.3"},
            }
        )
        registry = build_registry(config, environ={})

        triage = registry.get_required("triage")
        assert isinstance(triage, TaskComplexityRouter)
        assert triage.threshold == 0.3
        assert triage.small is registry.get("ollama")
        assert triage.route("Refactor the architecture for performance") is registry.get("claude")

    def test_strategy_skips_missing_members(self):
        config = make_config(
            {
                "claude": {"type": "anthropic"},
                "ollama": {},
                "resilient": {"type": "fallback", "members": ["claude", "ollama"]},
            }
        )
        registry = build_registry(config, environ={})
        assert [p.name for p in registry.get_required("resilient").providers] == ["ollama"]

    def test_strategy_without_members_skipped(self):
        config = make_config({"resilient": {"type": "fallback", "members": ["claude"]}})
        registry = build_registry(config, environ={})
        assert "resilient" not in registry

    def test_strategy_cycle(self):
        config = make_config(
            {
                "a": {"type": "fallback", "members": ["b"]},
                "b": {"type": "fallback", "members": ["a"]},
            }
        )
        with pytest.raises(InvalidConfiguration, match="refers to itself"):
            build_registry(config, environ={})

    def test_empty_config(self):
        registry = build_registry(RelayConfig())
        assert len(registry) == 0


class TestLoadRegistry:
    def test_registers_baseline_ollama(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"models": {"providers": {"lm": {"type": "custom", "base_url": "http://localhost:1234"}}}}))

        registry = load_registry(path)

        assert registry.ids() == ["lm", "ollama"]
        assert isinstance(registry.get_default(), OllamaProvider)

    def test_disabled_ollama_not_re_added(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"models": {"providers": {"ollama": {"enabled": False}}}}))

        registry = load_registry(path)
        assert "ollama" not in registry
