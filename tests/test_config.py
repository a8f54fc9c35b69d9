"""Tests for TOML configuration loading and saving."""

import pytest
import toml

from archgraph_cli import config, config_manager


class TestConfigManager:
    """Tests for config_manager."""

    def test_defaults_without_file(self):
        assert config_manager.load_config() == config_manager.DEFAULT_CONFIGS["ollama"]
        assert config_manager.load_section("security") == {}

    def test_save_and_load_llm(self, _isolated_config):
        assert config_manager.save_config("groq", "llama-3.3-70b-versatile", api_key="gsk_test")
        loaded = config_manager.load_config()
        assert loaded == {"provider": "groq", "model": "llama-3.3-70b-versatile", "api_key": "gsk_test"}
        assert toml.load(_isolated_config)["llm"]["provider"] == "groq"

    def test_saving_llm_preserves_other_sections(self):
        config_manager.save_section("security", {"batch_size": 2})
        config_manager.save_config("ollama", "qwen2.5-coder:7b")
        assert config_manager.load_section("security") == {"batch_size": 2}

    def test_clear_llm_config(self):
        config_manager.save_config("openai", "gpt-4o-mini", api_key="sk-test")
        config_manager.save_section("analysis", {"max_depth": 4})
        assert config_manager.clear_llm_config()
        assert config_manager.load_config()["provider"] == "ollama"
        assert config_manager.load_section("analysis") == {"max_depth": 4}

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError):
            config_manager.save_section("plugins", {"x": 1})

    def test_corrupt_file_is_ignored(self, _isolated_config):
        _isolated_config.parent.mkdir(parents=True, exist_ok=True)
        _isolated_config.write_text("this is = = not toml [")
        assert config_manager.load_full_config() == {}
        assert config_manager.load_config()["provider"] == "ollama"

    def test_provider_defaults(self):
        assert config_manager.get_provider_config("gemini")["model"] == "gemini-2.0-flash"
        assert config_manager.get_provider_config("nope")["provider"] == "ollama"


class TestSettings:
    """Tests for section merging in config."""

    def test_security_settings_merge(self):
        config_manager.save_section("security", {"ast_confidence_to_filter": 0.9, "rate_limit_ms": 0})
        settings = config.security_settings()
        assert settings["ast_confidence_to_filter"] == 0.9
        assert settings["rate_limit_ms"] == 0
        assert settings["batch_size"] == config.SECURITY_DEFAULTS["batch_size"]

    def test_analysis_settings(self):
        config_manager.save_section("analysis", {"include": ["**/*.py"], "max_depth": 3})
        settings = config.analysis_settings()
        assert settings["include"] == ["**/*.py"]
        assert settings["exclude"] == config.DEFAULT_EXCLUDE
        assert settings["max_depth"] == 3

    def test_architecture_defaults(self):
        settings = config.architecture_settings()
        assert settings["min_confidence"] == 30
        assert settings["detector_ai_weight"] == 0.4
        assert settings["classifier_ai_weight"] == 0.6
