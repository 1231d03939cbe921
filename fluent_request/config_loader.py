"""Config Loader - Loads request profiles from YAML.

A profiles file maps profile names to reusable request settings:

    profiles:
      slack:
        url: https://hooks.slack.com/services/${SLACK_HOOK}
        verb: post
        content_type: application/json
        timeout: 5
      internal:
        url: https://internal.example.com/api
        tls:
          cert: /etc/certs/client.pem
          key: /etc/certs/client.key

Every string value supports ${ENV_VAR} substitution.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fluent_request.models import ProfilesFile, RequestProfile

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when configuration loading fails."""


def load_profiles(config_path: Path) -> ProfilesFile:
    """Load request profiles from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ProfilesFile.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def get_profile(profiles: ProfilesFile, name: str) -> RequestProfile:
    """Look up a profile by name."""
    if name not in profiles.profiles:
        available = ", ".join(sorted(profiles.profiles)) or "(none)"
        raise ConfigError(f"Profile '{name}' not found in config. Available: {available}")
    return profiles.profiles[name]


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable not set: {var_name}")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
