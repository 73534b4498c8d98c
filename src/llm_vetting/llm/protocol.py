"""Protocol definitions for streaming text-generation providers."""

from typing import AsyncIterator, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field

from llm_vetting.config.models import ModelSettings, ProviderSettings
from llm_vetting.models.enums import ProviderName, Transport

DEFAULT_TEMPERATURE = 0.7


class SendPromptArgs(BaseModel):
    """Everything an adapter needs to start one streaming completion."""

    model: ModelSettings
    provider_settings: ProviderSettings
    prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    transport: Optional[Transport] = None  # falls back to provider_settings.transport

    @property
    def effective_transport(self) -> Transport:
        """Transport after applying the provider default."""
        return self.transport or self.provider_settings.transport

    @property
    def effective_temperature(self) -> float:
        """Call override, then model default, then the global default."""
        if self.temperature is not None:
            return self.temperature
        if self.model.temperature is not None:
            return self.model.temperature
        return DEFAULT_TEMPERATURE

    @property
    def effective_max_tokens(self) -> Optional[int]:
        """Call override, then model default."""
        return self.max_tokens if self.max_tokens is not None else self.model.max_tokens


class CompletionMetadata(BaseModel):
    """Metadata captured alongside a finished stream."""

    latency_ms: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    finish_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        """Whether the provider stopped because of the token limit."""
        return self.finish_reason in ("length", "max_tokens")


class Started(BaseModel):
    """The provider accepted the request; data may follow."""


class Chunk(BaseModel):
    """An incremental content delta."""

    text: str


class Completed(BaseModel):
    """Terminal event: the stream finished."""

    text: str
    metadata: CompletionMetadata = Field(default_factory=CompletionMetadata)


class Failed(BaseModel):
    """Terminal event: the request failed."""

    message: str


StreamEvent = Union[Started, Chunk, Completed, Failed]


@runtime_checkable
class StreamHandler(Protocol):
    """Callback view of a stream, for callers that prefer handlers to events."""

    def on_start(self) -> None:
        ...

    def on_chunk(self, text: str) -> None:
        ...

    def on_complete(self, full_text: str, metadata: CompletionMetadata) -> None:
        ...

    def on_error(self, message: str) -> None:
        ...


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol for provider adapters.

    Every adapter yields at most one ``Started`` before any ``Chunk`` and
    finishes with exactly one ``Completed`` or ``Failed``. Adapters never
    raise for request failures.
    """

    @property
    def provider(self) -> ProviderName:
        """The provider this adapter talks to."""
        ...

    def stream(self, args: SendPromptArgs) -> AsyncIterator[StreamEvent]:
        """Start a streaming completion.

        Args:
            args: Model, credentials, prompt and sampling parameters.

        Yields:
            Stream events in order.
        """
        ...
