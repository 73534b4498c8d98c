"""Provider adapters and stream decoding."""

from llm_vetting.llm.anthropic import AnthropicAdapter
from llm_vetting.llm.factory import create_adapter, create_adapters, send_prompt
from llm_vetting.llm.openai import DeepSeekAdapter, OpenAIAdapter, OpenAICompatibleAdapter
from llm_vetting.llm.protocol import (
    Chunk,
    Completed,
    CompletionMetadata,
    Failed,
    ProviderAdapter,
    SendPromptArgs,
    Started,
    StreamEvent,
    StreamHandler,
)

__all__ = [
    "AnthropicAdapter",
    "Chunk",
    "Completed",
    "CompletionMetadata",
    "DeepSeekAdapter",
    "Failed",
    "OpenAIAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "SendPromptArgs",
    "Started",
    "StreamEvent",
    "StreamHandler",
    "create_adapter",
    "create_adapters",
    "send_prompt",
]
