"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config


@pytest.fixture
def settings_dict() -> dict:
    return {
        "defaults": {
            "rounds": 2,
            "max_rounds": 5,
            "min_rounds": 1,
            "output_dir": "./output",
            "synthesizer": "claude",
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-opus-4-1",
                "display_name": "Claude Opus",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 8192,
                "pricing": {"input_per_1k": 0.015, "output_per_1k": 0.075},
            },
            "openai": {
                "sdk": "openai",
                "model": "gpt-4o",
                "api_key_env": "TEST_OPENAI_KEY",
                "timeout_sec": 60,
                "max_tokens": 4096,
            },
        },
        "prompts": {
            "initial": "Answer: {question}",
            "reply": "{name} ({role}): {content}",
            "respond": "Respond to {name}.",
            "synthesis": "Q: {question}\n{transcript}",
        },
        "personas": {"strategic-architect": "You are a Strategic Architect."},
        "styles": {"cooperative": "Be cooperative."},
    }


def _write(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


@pytest.fixture
def minimal_settings(tmp_path: Path, settings_dict: dict) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    return _write(tmp_path, settings_dict)


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.rounds == 2
    assert config.defaults.max_rounds == 5
    assert config.defaults.min_rounds == 1
    assert config.defaults.synthesizer == "claude"
    assert isinstance(config.defaults.output_dir, Path)


def test_optional_defaults_fall_back(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.early_stop is True
    assert config.defaults.max_retries == 2
    assert config.defaults.interjection_horizon == 2
    assert config.defaults.default_template == "template_code_review"


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].model == "claude-opus-4-1"
    assert config.models["claude"].display_name == "Claude Opus"


def test_display_name_defaults_to_key(minimal_settings):
    config = load_config(minimal_settings)
    assert config.models["openai"].display_name == "openai"


def test_pricing_is_optional(minimal_settings):
    config = load_config(minimal_settings)
    assert config.models["claude"].input_per_1k == 0.015
    assert config.models["claude"].output_per_1k == 0.075
    assert config.models["openai"].input_per_1k is None


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{question}" in config.prompts.initial
    assert config.prompts.personas["strategic-architect"].startswith("You are")
    assert config.prompts.styles["cooperative"] == "Be cooperative."


def test_inbox_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.inbox.dir == Path("./inbox")
    assert config.inbox.archive_dir == Path("./inbox/archive")


def test_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test")
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == {"claude"}


def test_blank_key_is_unavailable(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "   ")
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == set()


def test_missing_settings_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nonexistent.yaml")


@pytest.mark.parametrize(
    "key, value",
    [
        ("max_rounds", 21),
        ("rounds", 0),
        ("min_rounds", 0),
        ("max_retries", -1),
        ("interjection_horizon", 0),
        ("agreement_claim_ratio", 1.5),
    ],
)
def test_out_of_range_defaults_raise(tmp_path, settings_dict, key, value):
    settings_dict["defaults"][key] = value
    with pytest.raises(ValueError, match=key):
        load_config(_write(tmp_path, settings_dict))


def test_rounds_above_max_rounds_raise(tmp_path, settings_dict):
    settings_dict["defaults"]["rounds"] = 6
    with pytest.raises(ValueError, match="defaults.rounds"):
        load_config(_write(tmp_path, settings_dict))


def test_bundled_settings_load():
    """The shipped settings.yaml parses and carries every template model."""
    config = load_config()
    assert {"claude", "openai", "gemini"} <= set(config.models)
    assert "strategic-architect" in config.prompts.personas
    assert set(config.prompts.styles) == {"cooperative", "adversarial", "red_team", "panel"}
