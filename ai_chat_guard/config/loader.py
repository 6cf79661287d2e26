"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import yaml

API_KEY_ENV_VARS = ("AI_CHAT_GUARD_API_KEY", "OPENAI_API_KEY")
DEFAULT_CONFIG_PATH = "ai-chat-guard.yaml"
TOP_LEVEL_KEYS = {'llm', 'chat', 'storage'}

C = TypeVar("C")


@dataclass(frozen=True)
class LLMConfig:
    """Connection settings for the chat completion endpoint."""
    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: float = 30.0

    def __post_init__(self):
        """Validate connection values."""
        if not self.api_key or not str(self.api_key).strip():
            raise ValueError("API key is required for LLM service")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        if not self.model:
            raise ValueError("model cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


@dataclass(frozen=True)
class ChatSettings:
    """Pipeline behavior settings."""
    max_history_length: int = 50
    enable_context_gathering: bool = True
    enable_safety_filter: bool = True
    retry_attempts: int = 3
    retry_delay: float = 1.0
    model_name: Optional[str] = None

    def __post_init__(self):
        """Validate chat settings."""
        if self.max_history_length < 1:
            raise ValueError("max_history_length must be >= 1")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")


@dataclass(frozen=True)
class StorageConfig:
    """Conversation persistence settings."""
    db_path: str = ".ai-chat-guard.db"
    auto_save: bool = True

    def __post_init__(self):
        if not self.db_path:
            raise ValueError("db_path cannot be empty")


@dataclass(frozen=True)
class ChatGuardConfig:
    """Complete application configuration."""
    llm: LLMConfig
    chat: ChatSettings = field(default_factory=ChatSettings)
    storage: StorageConfig = field(default_factory=StorageConfig)


def resolve_api_key(explicit: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return ``explicit`` if set, else the first API key found in the environment."""
    if explicit:
        return explicit
    env = os.environ if env is None else env
    for name in API_KEY_ENV_VARS:
        value = env.get(name)
        if value:
            return value
    return None


def load_config(path: str = DEFAULT_CONFIG_PATH, env: Optional[Mapping[str, str]] = None) -> ChatGuardConfig:
    """Load and validate configuration from a YAML file.

    Strict validation ensures no silent misconfigurations: unknown keys and
    wrongly typed values are rejected rather than ignored.

    Args:
        path: Path to YAML configuration file
        env: Environment used to resolve the API key (defaults to os.environ)

    Returns:
        Validated ChatGuardConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    return parse_config(_read_yaml(path), env=env)


def load_storage_config(path: str = DEFAULT_CONFIG_PATH) -> StorageConfig:
    """Load only the storage section; no API key is needed.

    A missing file yields the default StorageConfig.

    Raises:
        ValueError: If the file has unknown keys or an invalid storage section
    """
    if not Path(path).exists():
        return StorageConfig()

    raw_config = _read_yaml(path)
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")
    unknown_keys = set(raw_config.keys()) - TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")
    return _build(StorageConfig, _section(raw_config, 'storage'), 'storage')


def _read_yaml(path: str) -> Any:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    return raw_config if raw_config is not None else {}


def parse_config(raw_config: Any, env: Optional[Mapping[str, str]] = None) -> ChatGuardConfig:
    """Validate an already-parsed configuration mapping.

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    llm_data = dict(_section(raw_config, 'llm'))
    llm_data['api_key'] = resolve_api_key(llm_data.get('api_key'), env)
    if not llm_data['api_key']:
        raise ValueError(
            "API key is required for LLM service "
            f"(set llm.api_key or one of {', '.join(API_KEY_ENV_VARS)})"
        )

    return ChatGuardConfig(
        llm=_build(LLMConfig, llm_data, 'llm'),
        chat=_build(ChatSettings, _section(raw_config, 'chat'), 'chat'),
        storage=_build(StorageConfig, _section(raw_config, 'storage'), 'storage'),
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _build(cls: Type[C], data: Dict[str, Any], path: str) -> C:
    """Construct a config dataclass from a section, checking keys and types.

    Args:
        cls: Target dataclass
        data: Section data
        path: Section name for error messages

    Returns:
        Validated instance of ``cls``

    Raises:
        ValueError: If the section has unknown keys or wrongly typed values
    """
    expected = {f.name: f.type for f in fields(cls)}
    unknown_keys = set(data.keys()) - set(expected)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values = {}
    for key, value in data.items():
        values[key] = _coerce(value, expected[key], f"{path}.{key}")
    return cls(**values)


def _coerce(value: Any, annotation: Any, path: str) -> Any:
    if value is None:
        if annotation == Optional[str]:
            return None
        raise ValueError(f"'{path}' cannot be null")

    if annotation is bool:
        if not isinstance(value, bool):
            raise ValueError(f"'{path}' must be a boolean")
        return value
    if annotation is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{path}' must be an integer")
        return value
    if annotation is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{path}' must be a number")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"'{path}' must be a string")
    return value
