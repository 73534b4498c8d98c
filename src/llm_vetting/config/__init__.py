"""Configuration management for the LLM vetting system."""

from llm_vetting.config.loader import load_config
from llm_vetting.config.models import (
    ClassificationThresholds,
    ModelSettings,
    ProviderSettings,
    RelaySettings,
    RunSettings,
    VettingConfig,
)

__all__ = [
    "ClassificationThresholds",
    "ModelSettings",
    "ProviderSettings",
    "RelaySettings",
    "RunSettings",
    "VettingConfig",
    "load_config",
]
