"""Configuration loader for the escalation service.

This module provides utilities to load and validate service configuration from
YAML files. String values of the form ``${VAR_NAME}`` are replaced with the
value of the matching environment variable so credentials stay out of the file.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from .schemas import EngineConfig

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _expand_env(value: Any) -> Any:
    """Recursively expand ``${VAR}`` placeholders in strings.

    Raises:
        ConfigurationError: If a referenced environment variable is not set
    """
    if isinstance(value, str):

        def replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            env_value = os.getenv(name)
            if env_value is None:
                raise ConfigurationError(f"Environment variable '{name}' is not set")
            return env_value

        return _ENV_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


def load_config_from_yaml(config_path: Union[str, Path]) -> EngineConfig:
    """Load and validate service configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated EngineConfig instance

    Raises:
        ConfigurationError: If the file cannot be read or validation fails
        FileNotFoundError: If the configuration file doesn't exist
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if not path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML file: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}") from e

    if config_data is None:
        raise ConfigurationError("Configuration file is empty")

    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration must be a YAML object (dict)")

    return load_config_from_dict(config_data)


def load_config_from_dict(config_dict: Dict[str, Any]) -> EngineConfig:
    """Load and validate service configuration from a dictionary.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Validated EngineConfig instance

    Raises:
        ConfigurationError: If an environment placeholder is unset or validation fails
    """
    try:
        return EngineConfig(**_expand_env(config_dict))
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
