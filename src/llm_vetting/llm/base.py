"""Shared streaming request logic for provider adapters."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Optional

import httpx

from llm_vetting.config.defaults import DEFAULT_RELAY_HOST, DEFAULT_RELAY_PORT
from llm_vetting.config.models import ProviderSettings
from llm_vetting.errors import ConfigError, TransportError
from llm_vetting.llm.protocol import (
    Chunk,
    Completed,
    CompletionMetadata,
    Failed,
    SendPromptArgs,
    Started,
    StreamEvent,
)
from llm_vetting.llm.sse import SSEMessage
from llm_vetting.models.enums import ProviderName, Transport

logger = logging.getLogger("llm_vetting.llm.base")

# Neutral header the relay reads the caller's credential from
RELAY_KEY_HEADER = "x-user-api-key"

DEFAULT_RELAY_URL = f"http://{DEFAULT_RELAY_HOST}:{DEFAULT_RELAY_PORT}"


@dataclass
class StreamState:
    """Accumulated text and usage for one in-flight stream."""

    text: str = ""
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    finish_reason: Optional[str] = None

    def metadata(self, latency_ms: int) -> CompletionMetadata:
        total = self.total_tokens
        if total is None and self.input_tokens is not None and self.output_tokens is not None:
            total = self.input_tokens + self.output_tokens
        return CompletionMetadata(
            latency_ms=latency_ms,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            total_tokens=total,
            finish_reason=self.finish_reason,
        )


class StreamingAdapter(ABC):
    """Base class for adapters that POST a JSON body and read back SSE.

    Subclasses describe the provider's envelope, auth header and wire
    framing; this class handles transport selection, error mapping and the
    event ordering contract.
    """

    provider: ProviderName
    display_name: str

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        relay_url: str = DEFAULT_RELAY_URL,
    ):
        """Initialize the adapter.

        Args:
            client: Shared HTTP client. One without timeouts is created if omitted.
            relay_url: Base URL of the credential-forwarding relay.
        """
        self._client = client or httpx.AsyncClient(timeout=None)
        self._owns_client = client is None
        self._relay_url = relay_url.rstrip("/")

    @abstractmethod
    def direct_url(self, settings: ProviderSettings) -> str:
        """Provider endpoint for direct transport."""
        ...

    @abstractmethod
    def auth_headers(self, api_key: str) -> dict[str, str]:
        """Provider-native authentication headers."""
        ...

    @abstractmethod
    def build_body(self, args: SendPromptArgs) -> dict[str, Any]:
        """Provider-specific request envelope (streaming enabled)."""
        ...

    @abstractmethod
    def iter_messages(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEMessage]:
        """Decode the provider's wire framing."""
        ...

    @abstractmethod
    def consume(self, message: SSEMessage, state: StreamState) -> str:
        """Record usage/finish metadata from a message and return its text delta."""
        ...

    def extra_headers(self) -> dict[str, str]:
        """Headers sent on every request regardless of transport."""
        return {}

    def relay_path(self) -> str:
        """Path of this provider's route on the relay."""
        return f"/api/relay/{self.provider.value}"

    def build_request(self, args: SendPromptArgs) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Build URL, headers and body for a request.

        Raises:
            ConfigError: If the provider is not usable with these settings.
        """
        api_key = args.provider_settings.api_key
        if not api_key:
            raise ConfigError(f"No API key configured for {self.provider.value}")

        headers = {"Content-Type": "application/json", **self.extra_headers()}
        if args.effective_transport == Transport.RELAY:
            url = f"{self._relay_url}{self.relay_path()}"
            headers[RELAY_KEY_HEADER] = api_key
        else:
            url = self.direct_url(args.provider_settings)
            headers.update(self.auth_headers(api_key))

        return url, headers, self.build_body(args)

    async def stream(self, args: SendPromptArgs) -> AsyncIterator[StreamEvent]:
        """Start a streaming completion and yield its events.

        Args:
            args: Model, credentials, prompt and sampling parameters.

        Yields:
            ``Started``, zero or more ``Chunk``, then ``Completed`` or ``Failed``.
        """
        try:
            url, headers, body = self.build_request(args)
        except ConfigError as e:
            yield Failed(message=str(e))
            return

        logger.debug(f"POST {url} model={args.model.id}")

        try:
            async with self._client.stream("POST", url, headers=headers, json=body) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"{self.display_name} API error: {response.status_code} {error_text}",
                        status_code=response.status_code,
                    )

                started = time.perf_counter()
                state = StreamState()
                yield Started()

                async for message in self.iter_messages(response.aiter_bytes()):
                    delta = self.consume(message, state)
                    if delta:
                        state.text += delta
                        yield Chunk(text=delta)

                latency_ms = round((time.perf_counter() - started) * 1000)
                yield Completed(text=state.text, metadata=state.metadata(latency_ms))

        except TransportError as e:
            logger.warning(f"{args.model.id}: {e}")
            yield Failed(message=str(e))
        except httpx.HTTPError as e:
            logger.warning(f"{args.model.id}: request failed: {type(e).__name__}: {e}")
            yield Failed(message=str(e) or type(e).__name__)

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()
