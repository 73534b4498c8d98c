"""Pydantic configuration models for the LLM vetting system."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from llm_vetting.config.defaults import (
    DEFAULT_CONCURRENCY,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LOOP_CAP,
    DEFAULT_RED_THRESHOLD,
    DEFAULT_RELAY_HOST,
    DEFAULT_RELAY_PORT,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_YELLOW_THRESHOLD,
)
from llm_vetting.models.enums import ProviderName, Transport


class ProviderSettings(BaseModel):
    """Credentials and routing for one provider."""

    api_key: str = ""
    base_url: Optional[str] = None  # required for openai_compatible
    transport: Transport = Transport.DIRECT

    @property
    def has_credential(self) -> bool:
        """Whether an API key is configured."""
        return bool(self.api_key.strip())


class ModelSettings(BaseModel):
    """A model that can be selected for a run."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    provider: ProviderName
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    enabled: bool = False


def _seed_models() -> list[ModelSettings]:
    return [
        ModelSettings(id="gpt-4o-mini", label="GPT-4o Mini", provider=ProviderName.OPENAI, temperature=0.7),
        ModelSettings(id="gpt-4o", label="GPT-4o", provider=ProviderName.OPENAI, temperature=0.7),
        ModelSettings(
            id="claude-3-5-sonnet-20241022",
            label="Claude 3.5 Sonnet",
            provider=ProviderName.ANTHROPIC,
            temperature=0.7,
        ),
        ModelSettings(
            id="claude-3-haiku-20240307",
            label="Claude 3 Haiku",
            provider=ProviderName.ANTHROPIC,
            temperature=0.7,
        ),
        ModelSettings(id="deepseek-chat", label="DeepSeek Chat", provider=ProviderName.DEEPSEEK, temperature=0.7),
        ModelSettings(id="deepseek-coder", label="DeepSeek Coder", provider=ProviderName.DEEPSEEK, temperature=0.7),
    ]


def _default_providers() -> dict[ProviderName, ProviderSettings]:
    return {provider: ProviderSettings() for provider in ProviderName}


class ClassificationThresholds(BaseModel):
    """Score cut-offs for reference-text classification."""

    red: float = Field(default=DEFAULT_RED_THRESHOLD, ge=0.0, le=1.0)
    yellow: float = Field(default=DEFAULT_YELLOW_THRESHOLD, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "ClassificationThresholds":
        if self.yellow > self.red:
            raise ValueError("yellow threshold must not exceed red threshold")
        return self


class RunSettings(BaseModel):
    """Engine and similarity behaviour."""

    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1, le=50)
    loop_cap: int = Field(default=DEFAULT_LOOP_CAP, ge=1, le=100)
    similarity_threshold: float = Field(default=DEFAULT_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    classification_thresholds: ClassificationThresholds = Field(default_factory=ClassificationThresholds)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1)


class RelaySettings(BaseModel):
    """Where the credential-forwarding relay lives."""

    host: str = DEFAULT_RELAY_HOST
    port: int = Field(default=DEFAULT_RELAY_PORT, ge=1, le=65535)
    base_url: Optional[str] = None  # defaults to http://{host}:{port}

    @property
    def url(self) -> str:
        """Base URL clients use to reach the relay."""
        return (self.base_url or f"http://{self.host}:{self.port}").rstrip("/")


class VettingConfig(BaseModel):
    """Root configuration model."""

    providers: dict[ProviderName, ProviderSettings] = Field(default_factory=_default_providers)
    models: list[ModelSettings] = Field(default_factory=_seed_models)
    run: RunSettings = Field(default_factory=RunSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)

    model_config = ConfigDict(extra="ignore")  # Ignore unknown fields in config file

    @model_validator(mode="after")
    def _fill_providers(self) -> "VettingConfig":
        for provider in ProviderName:
            self.providers.setdefault(provider, ProviderSettings())
        return self

    def get_model(self, model_id: str) -> Optional[ModelSettings]:
        """Look up a model by id."""
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def get_provider_settings(self, provider: ProviderName) -> ProviderSettings:
        """Settings for a provider (empty settings when unconfigured)."""
        return self.providers.get(provider, ProviderSettings())

    @property
    def enabled_models(self) -> list[ModelSettings]:
        """Models switched on in the catalogue."""
        return [m for m in self.models if m.enabled]
