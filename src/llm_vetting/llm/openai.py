"""OpenAI chat-completions adapter, also used for DeepSeek and compatible APIs."""

import logging
from typing import Any, AsyncIterable, AsyncIterator

from llm_vetting.config.models import ProviderSettings
from llm_vetting.errors import ConfigError
from llm_vetting.llm.base import StreamingAdapter, StreamState
from llm_vetting.llm.protocol import SendPromptArgs
from llm_vetting.llm.sse import SSEMessage, iter_sse
from llm_vetting.models.enums import ProviderName

logger = logging.getLogger("llm_vetting.llm.openai")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEEPSEEK_URL = "https://api.deepseek.com/chat/completions"


class OpenAIAdapter(StreamingAdapter):
    """Streams from the OpenAI chat-completions API."""

    provider = ProviderName.OPENAI
    display_name = "OpenAI"

    def direct_url(self, settings: ProviderSettings) -> str:
        return OPENAI_URL

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def build_body(self, args: SendPromptArgs) -> dict[str, Any]:
        messages = []
        if args.system_prompt:
            messages.append({"role": "system", "content": args.system_prompt})
        messages.append({"role": "user", "content": args.prompt})

        body: dict[str, Any] = {
            "model": args.model.id,
            "messages": messages,
            "temperature": args.effective_temperature,
            "stream": True,
        }
        if (max_tokens := args.effective_max_tokens) is not None:
            body["max_tokens"] = max_tokens
        return body

    def iter_messages(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEMessage]:
        return iter_sse(chunks)

    def consume(self, message: SSEMessage, state: StreamState) -> str:
        data = message.data
        delta = ""

        choices = data.get("choices") or []
        if choices:
            choice = choices[0]
            delta = (choice.get("delta") or {}).get("content") or ""
            if finish_reason := choice.get("finish_reason"):
                state.finish_reason = finish_reason

        # Usage arrives on a trailing chunk when the provider reports it
        if usage := data.get("usage"):
            state.input_tokens = usage.get("prompt_tokens", state.input_tokens)
            state.output_tokens = usage.get("completion_tokens", state.output_tokens)
            state.total_tokens = usage.get("total_tokens", state.total_tokens)

        return delta


class DeepSeekAdapter(OpenAIAdapter):
    """DeepSeek speaks the OpenAI wire format."""

    provider = ProviderName.DEEPSEEK
    display_name = "DeepSeek"

    def direct_url(self, settings: ProviderSettings) -> str:
        return DEEPSEEK_URL


class OpenAICompatibleAdapter(OpenAIAdapter):
    """Any server exposing ``/chat/completions`` at a configured base URL."""

    provider = ProviderName.OPENAI_COMPATIBLE
    display_name = "OpenAI-compatible"

    def direct_url(self, settings: ProviderSettings) -> str:
        if not settings.base_url:
            raise ConfigError("No base URL configured for openai_compatible")
        return f"{settings.base_url.rstrip('/')}/chat/completions"

    def relay_path(self) -> str:
        # The relay only knows fixed upstreams
        raise ConfigError("Relay transport is not available for openai_compatible")
