"""Settings read from ~/.nodeflow/configuration.json.

The file is optional and every key has a default. It is re-read on each
lookup so edits take effect on the next run without a restart. Layout:

    {
      "llm": {"provider": "openai", "model": "gpt-4o-mini",
              "max_tokens": 1024, "api_key_env_var": "OPENAI_API_KEY",
              "api_base": null, "temperature": 0.7},
      "execution": {"node_delay_ms": 300},
      "logging": {"level": "INFO"}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "anthropic/claude-haiku-4-5-20251001"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
DEFAULT_NODE_DELAY_MS = 300
DEFAULT_LOG_LEVEL = "INFO"

NODEFLOW_CONFIG_FILE = Path.home() / ".nodeflow" / "configuration.json"


def get_nodeflow_config() -> dict[str, Any]:
    """Parsed configuration file, or {} when it is absent or unreadable."""
    path = NODEFLOW_CONFIG_FILE
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _section(name: str) -> dict[str, Any]:
    section = get_nodeflow_config().get(name)
    return section if isinstance(section, dict) else {}


def get_preferred_model() -> str:
    """LiteLLM model string such as 'openai/gpt-4o-mini'; needs both provider and model."""
    llm = _section("llm")
    provider, model = llm.get("provider"), llm.get("model")
    return f"{provider}/{model}" if provider and model else DEFAULT_MODEL


def get_max_tokens() -> int:
    return _section("llm").get("max_tokens", DEFAULT_MAX_TOKENS)


def get_temperature() -> float:
    return _section("llm").get("temperature", DEFAULT_TEMPERATURE)


def get_api_base() -> str | None:
    return _section("llm").get("api_base") or None


def get_api_key() -> str | None:
    """Value of the environment variable named by ``llm.api_key_env_var``."""
    env_var = _section("llm").get("api_key_env_var")
    return os.environ.get(env_var) if env_var else None


def get_node_delay_ms() -> int:
    return _section("execution").get("node_delay_ms", DEFAULT_NODE_DELAY_MS)


def get_log_level() -> str:
    return _section("logging").get("level", DEFAULT_LOG_LEVEL)


@dataclass
class RuntimeConfig:
    """Snapshot of the configuration file taken when the object is created."""

    model: str = field(default_factory=get_preferred_model)
    temperature: float = field(default_factory=get_temperature)
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=get_api_base)
    node_delay_ms: int = field(default_factory=get_node_delay_ms)
    log_level: str = field(default_factory=get_log_level)
