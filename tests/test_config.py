"""
Unit tests for configuration loading and validation.

Tests strict validation, API key resolution and error handling.
"""

import os
import tempfile

import pytest
import yaml

from ai_chat_guard.config.loader import (
    ChatSettings,
    LLMConfig,
    StorageConfig,
    load_config,
    load_storage_config,
    parse_config,
    resolve_api_key,
)

NO_ENV = {}


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "llm": {
                "api_key": "sk-test",
                "base_url": "http://localhost:8080/v1",
                "model": "gpt-4",
                "max_tokens": 1024,
                "temperature": 0,
            },
            "chat": {
                "max_history_length": 20,
                "enable_context_gathering": False,
                "retry_attempts": 5,
                "retry_delay": 0.5,
            },
            "storage": {
                "db_path": "data/chat.db",
                "auto_save": False,
            },
        }

        config = load_config(self._write_config(config_data), env=NO_ENV)

        assert config.llm.api_key == "sk-test"
        assert config.llm.base_url == "http://localhost:8080/v1"
        assert config.llm.model == "gpt-4"
        assert config.llm.max_tokens == 1024
        assert config.llm.temperature == 0.0
        assert isinstance(config.llm.temperature, float)
        assert config.chat.max_history_length == 20
        assert not config.chat.enable_context_gathering
        assert config.chat.enable_safety_filter
        assert config.chat.retry_attempts == 5
        assert config.storage == StorageConfig(db_path="data/chat.db", auto_save=False)

    def test_defaults_applied(self):
        """Test that omitted sections fall back to defaults."""
        config = load_config(self._write_config({"llm": {"api_key": "sk-test"}}), env=NO_ENV)

        assert config.llm.base_url == "https://api.openai.com/v1"
        assert config.llm.model == "gpt-3.5-turbo"
        assert config.chat == ChatSettings()
        assert config.storage == StorageConfig()

    def test_api_key_from_environment(self):
        """Test the API key can come from the environment."""
        path = self._write_config({"llm": {"model": "gpt-4"}})
        config = load_config(path, env={"OPENAI_API_KEY": "sk-env"})
        assert config.llm.api_key == "sk-env"

    def test_missing_api_key(self):
        """Test that a missing API key is rejected."""
        path = self._write_config({"llm": {"model": "gpt-4"}})
        with pytest.raises(ValueError, match="API key is required for LLM service"):
            load_config(path, env=NO_ENV)

    def test_missing_file(self):
        """Test error for missing config file."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "missing.yaml"), env=NO_ENV)

    def test_invalid_yaml(self):
        """Test error for invalid YAML."""
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("llm: [unclosed\n")
        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_config(path, env=NO_ENV)

    def test_unknown_top_level_keys(self):
        """Test that unknown top-level keys are rejected."""
        path = self._write_config({"llm": {"api_key": "sk"}, "budget": {}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(path, env=NO_ENV)

    def test_unknown_section_keys(self):
        """Test that unknown keys inside a section are rejected."""
        path = self._write_config({"llm": {"api_key": "sk", "modle": "gpt-4"}})
        with pytest.raises(ValueError, match="Unknown keys in llm"):
            load_config(path, env=NO_ENV)

    @pytest.mark.parametrize("section,key,value,message", [
        ("chat", "retry_attempts", "three", "'chat.retry_attempts' must be an integer"),
        ("chat", "retry_attempts", True, "'chat.retry_attempts' must be an integer"),
        ("chat", "enable_safety_filter", "yes", "'chat.enable_safety_filter' must be a boolean"),
        ("llm", "temperature", "hot", "'llm.temperature' must be a number"),
        ("llm", "model", 4, "'llm.model' must be a string"),
        ("storage", "db_path", None, "'storage.db_path' cannot be null"),
    ])
    def test_wrong_types_rejected(self, section, key, value, message):
        """Test that wrongly typed values are rejected, not coerced."""
        data = {"llm": {"api_key": "sk"}}
        data.setdefault(section, {})[key] = value
        with pytest.raises(ValueError, match=message):
            load_config(self._write_config(data), env=NO_ENV)

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'chat' must be a dictionary"):
            parse_config({"llm": {"api_key": "sk"}, "chat": [1, 2]}, env=NO_ENV)

    def test_config_must_be_mapping(self):
        with pytest.raises(ValueError, match="Configuration must be a dictionary"):
            parse_config(["llm"], env=NO_ENV)

    def test_nullable_model_name(self):
        config = parse_config({"llm": {"api_key": "sk"}, "chat": {"model_name": None}}, env=NO_ENV)
        assert config.chat.model_name is None

    def test_storage_config_without_key(self):
        """The storage section loads without an API key."""
        path = self._write_config({"storage": {"db_path": "x.db"}})
        assert load_storage_config(path) == StorageConfig(db_path="x.db")

    def test_storage_config_missing_file(self):
        assert load_storage_config(os.path.join(self.temp_dir, "none.yaml")) == StorageConfig()


class TestValueValidation:
    """Test dataclass-level validation."""

    @pytest.mark.parametrize("kwargs,message", [
        ({"api_key": " "}, "API key is required"),
        ({"api_key": "sk", "base_url": "ftp://x"}, "base_url must be an http"),
        ({"api_key": "sk", "max_tokens": 0}, "max_tokens must be > 0"),
        ({"api_key": "sk", "temperature": 3.0}, "temperature must be between 0 and 2"),
        ({"api_key": "sk", "timeout": 0}, "timeout must be > 0"),
    ])
    def test_llm_config(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            LLMConfig(**kwargs)

    @pytest.mark.parametrize("kwargs,message", [
        ({"max_history_length": 0}, "max_history_length must be >= 1"),
        ({"retry_attempts": 0}, "retry_attempts must be >= 1"),
        ({"retry_delay": -1.0}, "retry_delay must be >= 0"),
    ])
    def test_chat_settings(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            ChatSettings(**kwargs)


class TestResolveApiKey:
    """Test API key precedence."""

    def test_explicit_wins(self):
        assert resolve_api_key("sk-explicit", {"OPENAI_API_KEY": "sk-env"}) == "sk-explicit"

    def test_environment_order(self):
        env = {"OPENAI_API_KEY": "sk-openai", "AI_CHAT_GUARD_API_KEY": "sk-guard"}
        assert resolve_api_key(None, env) == "sk-guard"

    def test_none_found(self):
        assert resolve_api_key(None, {}) is None
