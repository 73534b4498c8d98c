"""Pytest configuration and fixtures."""

import asyncio
from typing import AsyncIterator, Optional

import pytest

from llm_vetting.config.models import ProviderSettings, VettingConfig
from llm_vetting.llm.protocol import (
    Chunk,
    Completed,
    CompletionMetadata,
    Failed,
    SendPromptArgs,
    Started,
    StreamEvent,
)
from llm_vetting.models.enums import ProviderName


class FakeAdapter:
    """In-memory adapter that replays a scripted reply for every call.

    Calls listed in ``fail_calls`` (0-based) end with ``Failed``; when ``gate``
    is given, every stream blocks after ``Started`` until the gate is set.
    """

    def __init__(
        self,
        provider: ProviderName,
        reply: str = "The quick brown fox jumps over the lazy dog.",
        fail_calls: Optional[set[int]] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self._provider = provider
        self.reply = reply
        self.fail_calls = fail_calls or set()
        self.gate = gate
        self.calls: list[SendPromptArgs] = []
        self.closed = False

    @property
    def provider(self) -> ProviderName:
        return self._provider

    async def stream(self, args: SendPromptArgs) -> AsyncIterator[StreamEvent]:
        call = len(self.calls)
        self.calls.append(args)

        yield Started()
        if self.gate is not None:
            await self.gate.wait()

        if call in self.fail_calls:
            yield Failed(message="OpenAI API error: 500 upstream exploded")
            return

        half = len(self.reply) // 2
        yield Chunk(text=self.reply[:half])
        yield Chunk(text=self.reply[half:])
        yield Completed(
            text=self.reply,
            metadata=CompletionMetadata(latency_ms=12, input_tokens=5, output_tokens=9, total_tokens=14),
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def vetting_config() -> VettingConfig:
    """Config with credentials for OpenAI and Anthropic only."""
    return VettingConfig(
        providers={
            ProviderName.OPENAI: ProviderSettings(api_key="sk-test"),
            ProviderName.ANTHROPIC: ProviderSettings(api_key="sk-ant-test"),
        }
    )


@pytest.fixture
def fake_adapters() -> dict[ProviderName, FakeAdapter]:
    """One scripted adapter per provider."""
    return {provider: FakeAdapter(provider) for provider in ProviderName}


@pytest.fixture
def fake_adapter_cls() -> type[FakeAdapter]:
    """The scripted adapter class, for tests that need custom replies."""
    return FakeAdapter
