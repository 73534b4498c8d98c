"""Anthropic Messages API adapter."""

import logging
from typing import Any, AsyncIterable, AsyncIterator

from llm_vetting.config.models import ProviderSettings
from llm_vetting.llm.base import StreamingAdapter, StreamState
from llm_vetting.llm.protocol import SendPromptArgs
from llm_vetting.llm.sse import CONTENT_DELTA_EVENT, STREAM_END_EVENT, SSEMessage, iter_typed_sse
from llm_vetting.models.enums import ProviderName

logger = logging.getLogger("llm_vetting.llm.anthropic")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

# The Messages API requires max_tokens
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(StreamingAdapter):
    """Streams from the Anthropic Messages API (typed-event SSE)."""

    provider = ProviderName.ANTHROPIC
    display_name = "Anthropic"

    def direct_url(self, settings: ProviderSettings) -> str:
        return ANTHROPIC_URL

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key}

    def extra_headers(self) -> dict[str, str]:
        return {"anthropic-version": ANTHROPIC_VERSION}

    def build_body(self, args: SendPromptArgs) -> dict[str, Any]:
        max_tokens = args.effective_max_tokens
        body: dict[str, Any] = {
            "model": args.model.id,
            "messages": [{"role": "user", "content": args.prompt}],
            "max_tokens": max_tokens if max_tokens is not None else DEFAULT_MAX_TOKENS,
            "temperature": args.effective_temperature,
            "stream": True,
        }
        if args.system_prompt:
            body["system"] = args.system_prompt
        return body

    def iter_messages(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEMessage]:
        return iter_typed_sse(chunks)

    def consume(self, message: SSEMessage, state: StreamState) -> str:
        data = message.data

        if message.event == CONTENT_DELTA_EVENT:
            return (data.get("delta") or {}).get("text") or ""

        if message.event == "message_start":
            usage = (data.get("message") or {}).get("usage") or {}
            state.input_tokens = usage.get("input_tokens", state.input_tokens)
        elif message.event == STREAM_END_EVENT:
            usage = data.get("usage") or {}
            state.output_tokens = usage.get("output_tokens", state.output_tokens)
            if stop_reason := (data.get("delta") or {}).get("stop_reason"):
                state.finish_reason = stop_reason

        return ""
