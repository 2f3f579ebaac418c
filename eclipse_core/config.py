"""
Configuration - Where things live and how they behave.

Settings come from three places (later wins):
1. Built-in defaults
2. The YAML file at <data_dir>/config.yaml
3. Environment variables (a .env file is loaded first)

Usage:
    settings = load_settings()
    settings.profiles_dir   # ~/.eclipse-agent/profiles
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("eclipse_core.config")

DEFAULT_DATA_DIR = Path.home() / ".eclipse-agent"

# Environment variable -> settings field
ENV_VARS = {
    "ECLIPSE_DATA_DIR": "data_dir",
    "ECLIPSE_PROFILE": "profile_override",
    "ECLIPSE_EMBEDDING_MODEL": "embedding_model",
    "ECLIPSE_EMBEDDING_RETRIES": "embedding_max_attempts",
    "ECLIPSE_EMBEDDING_RETRY_DELAY": "embedding_retry_delay",
    "ECLIPSE_LOG_LEVEL": "log_level",
}


@dataclass
class Settings:
    """Runtime configuration for the agent core."""
    data_dir: Path = DEFAULT_DATA_DIR
    profile_override: Optional[str] = None
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_max_attempts: int = 3
    embedding_retry_delay: float = 1.0   # seconds, doubled per attempt
    embedding_max_chars: int = 2000      # input truncated before inference
    log_level: str = "INFO"
    working_dir: Path = field(default_factory=Path.cwd)

    @property
    def profiles_dir(self) -> Path:
        return self.data_dir / "profiles"

    @property
    def model_cache_dir(self) -> Path:
        return self.data_dir / ".cache" / "models"

    @property
    def config_file(self) -> Path:
        return self.data_dir / "config.yaml"


def _coerce(name: str, value: Any) -> Any:
    """Convert raw config values to the type of the matching field."""
    if value is None:
        return None
    if name in ("data_dir", "working_dir"):
        return Path(value).expanduser()
    if name == "embedding_max_attempts" or name == "embedding_max_chars":
        return int(value)
    if name == "embedding_retry_delay":
        return float(value)
    return str(value)


def _load_yaml(path: Path) -> dict:
    """Read the optional YAML config file. Broken files are ignored."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: expected a mapping")
        return {}
    return data


def load_settings(**overrides) -> Settings:
    """Build Settings from defaults, config.yaml, environment and overrides.

    Args:
        **overrides: Explicit field values (highest precedence). Tests use
            this to point the data dir at a temp directory.
    """
    load_dotenv()

    values: dict[str, Any] = {}
    env = {
        field_name: os.environ[var]
        for var, field_name in ENV_VARS.items()
        if os.environ.get(var)
    }

    # The data dir decides where config.yaml lives, so resolve it first
    data_dir = overrides.get("data_dir") or env.get("data_dir") or DEFAULT_DATA_DIR
    data_dir = Path(data_dir).expanduser()

    known = {f.name for f in fields(Settings)}
    yaml_values = {}
    for key, value in _load_yaml(data_dir / "config.yaml").items():
        if key in known:
            yaml_values[key] = value
        else:
            logger.debug(f"Unknown config key ignored: {key}")

    # Later layers win; a bad value leaves the earlier one in place
    overrides = {k: v for k, v in overrides.items() if v is not None}
    for layer in (yaml_values, env, overrides):
        for key, value in layer.items():
            try:
                values[key] = _coerce(key, value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid value for {key}: {value!r}")
    values["data_dir"] = data_dir

    return Settings(**values)
