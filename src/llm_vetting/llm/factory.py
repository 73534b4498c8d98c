"""Adapter construction and provider dispatch."""

import asyncio
import logging
from typing import Optional

import httpx

from llm_vetting.errors import CancellationError
from llm_vetting.llm.anthropic import AnthropicAdapter
from llm_vetting.llm.base import DEFAULT_RELAY_URL, StreamingAdapter
from llm_vetting.llm.openai import DeepSeekAdapter, OpenAIAdapter, OpenAICompatibleAdapter
from llm_vetting.llm.protocol import (
    Chunk,
    Completed,
    Failed,
    ProviderAdapter,
    SendPromptArgs,
    Started,
    StreamHandler,
)
from llm_vetting.models.enums import ProviderName

logger = logging.getLogger("llm_vetting.llm.factory")

ADAPTER_CLASSES: dict[ProviderName, type[StreamingAdapter]] = {
    ProviderName.OPENAI: OpenAIAdapter,
    ProviderName.ANTHROPIC: AnthropicAdapter,
    ProviderName.DEEPSEEK: DeepSeekAdapter,
    ProviderName.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
}


def create_adapter(
    provider: ProviderName,
    client: Optional[httpx.AsyncClient] = None,
    relay_url: str = DEFAULT_RELAY_URL,
) -> StreamingAdapter:
    """Create the adapter for a provider.

    Args:
        provider: Provider to talk to.
        client: Optional shared HTTP client.
        relay_url: Base URL of the relay server.

    Returns:
        Adapter instance.

    Raises:
        ValueError: If the provider is not supported.
    """
    adapter_cls = ADAPTER_CLASSES.get(ProviderName(provider))
    if adapter_cls is None:
        raise ValueError(f"No adapter found for provider: {provider}")
    return adapter_cls(client=client, relay_url=relay_url)


def create_adapters(
    client: Optional[httpx.AsyncClient] = None,
    relay_url: str = DEFAULT_RELAY_URL,
) -> dict[ProviderName, ProviderAdapter]:
    """Create one adapter per provider, sharing a single HTTP client."""
    client = client or httpx.AsyncClient(timeout=None)
    return {provider: create_adapter(provider, client, relay_url) for provider in ADAPTER_CLASSES}


def get_available_providers() -> list[str]:
    """Get list of available provider names.

    Returns:
        List of provider names.
    """
    return [p.value for p in ADAPTER_CLASSES]


async def send_prompt(
    provider: ProviderName,
    args: SendPromptArgs,
    handler: StreamHandler,
    adapters: Optional[dict[ProviderName, ProviderAdapter]] = None,
) -> None:
    """Run one streaming completion, reporting through handler callbacks.

    ``on_start`` precedes any ``on_chunk``; exactly one of ``on_complete`` or
    ``on_error`` ends the call. Cancelling the awaiting task reports
    ``on_error("Request was canceled")`` before the cancellation propagates.

    Args:
        provider: Provider to dispatch to.
        args: Request arguments.
        handler: Callback receiver.
        adapters: Adapter registry; a throwaway one is built if omitted.
    """
    owned = adapters is None
    if adapters is None:
        adapters = {provider: create_adapter(provider)}

    adapter = adapters.get(provider)
    if adapter is None:
        raise ValueError(f"No adapter found for provider: {provider}")

    try:
        async for event in adapter.stream(args):
            if isinstance(event, Started):
                handler.on_start()
            elif isinstance(event, Chunk):
                handler.on_chunk(event.text)
            elif isinstance(event, Completed):
                handler.on_complete(event.text, event.metadata)
            elif isinstance(event, Failed):
                handler.on_error(event.message)
    except asyncio.CancelledError:
        handler.on_error(str(CancellationError()))
        raise
    finally:
        if owned:
            await adapter.close()
