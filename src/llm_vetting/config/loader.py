"""Configuration loading and merging logic."""

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from llm_vetting.config.defaults import API_KEY_ENV_VARS, BASE_URL_ENV_VAR, CONFIG_SEARCH_PATHS
from llm_vetting.config.models import VettingConfig
from llm_vetting.errors import ConfigError
from llm_vetting.models.enums import ProviderName


def find_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file.

    Args:
        explicit_path: Explicitly specified config file path (from CLI).

    Returns:
        Path to config file if found, None otherwise.
    """
    if explicit_path is not None:
        if explicit_path.exists():
            return explicit_path
        raise FileNotFoundError(f"Config file not found: {explicit_path}")

    # Search default locations
    for search_path in CONFIG_SEARCH_PATHS:
        if search_path.exists():
            return search_path

    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON or YAML file.

    Args:
        path: Path to the configuration file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigError: If the file cannot be parsed.
    """
    with open(path, encoding="utf-8") as f:
        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Fill empty provider credentials from the environment.

    Keys already present in the config file win over the environment.
    """
    providers = data.setdefault("providers", {})
    for provider, env_var in API_KEY_ENV_VARS.items():
        settings = providers.setdefault(provider, {})
        if not settings.get("api_key") and (api_key := os.environ.get(env_var)):
            settings["api_key"] = api_key

    compatible = providers.setdefault(ProviderName.OPENAI_COMPATIBLE.value, {})
    if not compatible.get("base_url") and (base_url := os.environ.get(BASE_URL_ENV_VAR)):
        compatible["base_url"] = base_url

    return data


def merge_cli_overrides(
    config: VettingConfig,
    concurrency: Optional[int] = None,
    loop_cap: Optional[int] = None,
    similarity_threshold: Optional[float] = None,
    red_threshold: Optional[float] = None,
    yellow_threshold: Optional[float] = None,
    relay_url: Optional[str] = None,
    transport: Optional[str] = None,
) -> VettingConfig:
    """Merge CLI overrides into the configuration.

    CLI arguments take precedence over config file values.

    Args:
        config: Base configuration from file and environment.
        concurrency: Max simultaneous provider connections.
        loop_cap: Upper bound on repetitions per model.
        similarity_threshold: Pairing threshold for duplicate detection.
        red_threshold: Classification cut-off for "red".
        yellow_threshold: Classification cut-off for "yellow".
        relay_url: Base URL of the relay server.
        transport: Force a transport ("direct" or "relay") for every provider.

    Returns:
        Configuration with CLI overrides applied.
    """
    # Create a copy to avoid mutating the original
    data = config.model_dump(mode="json")

    if concurrency is not None:
        data["run"]["concurrency"] = concurrency
    if loop_cap is not None:
        data["run"]["loop_cap"] = loop_cap
    if similarity_threshold is not None:
        data["run"]["similarity_threshold"] = similarity_threshold
    if red_threshold is not None:
        data["run"]["classification_thresholds"]["red"] = red_threshold
    if yellow_threshold is not None:
        data["run"]["classification_thresholds"]["yellow"] = yellow_threshold
    if relay_url is not None:
        data["relay"]["base_url"] = relay_url
    if transport is not None:
        for settings in data["providers"].values():
            settings["transport"] = transport

    return VettingConfig.model_validate(data)


def load_config(
    config_path: Optional[Path] = None,
    **cli_overrides: Any,
) -> VettingConfig:
    """Load configuration with CLI overrides.

    Configuration is loaded from the following sources (in order of priority):
    1. CLI arguments (highest priority)
    2. Config file (if found)
    3. Environment variables (only fill what the file leaves empty)
    4. Default values (lowest priority)

    Args:
        config_path: Explicit config file path (from --config CLI option).
        **cli_overrides: CLI argument overrides.

    Returns:
        Merged configuration object.
    """
    data: dict[str, Any] = {}

    found_config = find_config_file(config_path)
    if found_config is not None:
        data = load_config_file(found_config)

    data = apply_env_overrides(data)
    config = VettingConfig.model_validate(data)

    return merge_cli_overrides(config, **cli_overrides)
