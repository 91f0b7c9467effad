"""
Configuration Loader - Bridge Between JSON Options and ClientSettings
====================================================================
Loads client options from a JSON file or a plain dict.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .settings import ClientSettings


def resolve_env_vars(data: Any) -> Any:
    """Replace ``"${VAR}"`` string values with the environment variable VAR."""
    if isinstance(data, dict):
        return {k: resolve_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [resolve_env_vars(i) for i in data]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        return os.getenv(data[2:-1], "")
    return data


def load_settings_from_json(config_path: Union[str, Path]) -> ClientSettings:
    """
    Load ClientSettings from a JSON options file.

    Keys missing from the file fall back to environment variables and
    defaults. A missing or malformed file raises; unlike application
    startup code, a library must not guess its configuration.

    Args:
        config_path: Path to the JSON file

    Returns:
        Configured ClientSettings instance
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = json.load(f)

    if not isinstance(config_data, dict):
        raise ValueError(f"Options file {config_path} must contain a JSON object")

    return ClientSettings(**resolve_env_vars(config_data))


def load_settings(options: Optional[Union[str, Path, Dict[str, Any], ClientSettings]] = None) -> ClientSettings:
    """Build ClientSettings from a file path, a dict, an existing instance or nothing."""
    if options is None:
        return ClientSettings()
    if isinstance(options, ClientSettings):
        return options
    if isinstance(options, (str, Path)):
        return load_settings_from_json(options)
    if isinstance(options, dict):
        return ClientSettings(**resolve_env_vars(options))
    raise TypeError(f"Unsupported options type: {type(options).__name__}")
