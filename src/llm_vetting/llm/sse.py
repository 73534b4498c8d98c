"""Incremental server-sent-event decoding.

Two framings are supported:

* generic: ``data:`` lines carrying JSON, terminated by ``data: [DONE]``
  (OpenAI and compatible APIs).
* typed: each frame also carries an ``event:`` line; only content deltas carry
  text, and a ``message_delta`` event ends the stream (Anthropic).

Both keep a buffer across network reads so frames split between chunks still
decode, skip malformed payloads, and treat a failed read or an abrupt close
as the end of the stream.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Callable, Optional

import httpx

from llm_vetting.errors import ProtocolError

logger = logging.getLogger("llm_vetting.llm.sse")

DONE_SENTINEL = "[DONE]"
CONTENT_DELTA_EVENT = "content_block_delta"
STREAM_END_EVENT = "message_delta"


@dataclass
class SSEMessage:
    """One decoded frame payload."""

    data: dict[str, Any]
    event: Optional[str] = None


class SSEBuffer:
    """Accumulates raw bytes and splits off complete, blank-line-delimited frames."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add bytes and return every frame completed by them."""
        self._buffer += self._decoder.decode(chunk)
        self._buffer = self._buffer.replace("\r\n", "\n")

        frames = []
        while (idx := self._buffer.find("\n\n")) != -1:
            frames.append(self._buffer[:idx])
            self._buffer = self._buffer[idx + 2:]
        return frames

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._buffer


def _field(line: str, name: str) -> Optional[str]:
    prefix = f"{name}:"
    if line.startswith(prefix):
        return line[len(prefix):].strip()
    return None


def _decode_payload(payload: str) -> dict[str, Any]:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Malformed SSE payload: {payload[:200]!r}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Unexpected SSE payload type: {type(data).__name__}")
    return data


async def iter_sse(chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEMessage]:
    """Decode a generic ``data:``/``[DONE]`` stream.

    Args:
        chunks: Raw body bytes as they arrive.

    Yields:
        One message per well-formed ``data:`` payload, until the sentinel.
    """
    buffer = SSEBuffer()
    try:
        async for chunk in chunks:
            for frame in buffer.feed(chunk):
                for line in frame.split("\n"):
                    payload = _field(line, "data")
                    if payload is None:
                        continue
                    if payload == DONE_SENTINEL:
                        return
                    try:
                        yield SSEMessage(data=_decode_payload(payload))
                    except ProtocolError as e:
                        logger.debug(f"Skipping frame: {e}")
    except httpx.HTTPError as e:
        logger.warning(f"SSE stream read failed: {e}")


async def iter_typed_sse(chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEMessage]:
    """Decode an ``event:``-typed stream.

    Content deltas and metadata events (``message_start``, ``message_delta``)
    are yielded with their event type; the stream ends after ``message_delta``.

    Args:
        chunks: Raw body bytes as they arrive.

    Yields:
        Messages tagged with their event type.
    """
    buffer = SSEBuffer()
    try:
        async for chunk in chunks:
            for frame in buffer.feed(chunk):
                event_type = ""
                payload = ""
                for line in frame.split("\n"):
                    if (value := _field(line, "event")) is not None:
                        event_type = value
                    elif (value := _field(line, "data")) is not None:
                        payload = value

                if event_type == STREAM_END_EVENT:
                    if payload:
                        try:
                            yield SSEMessage(data=_decode_payload(payload), event=event_type)
                        except ProtocolError as e:
                            logger.debug(f"Skipping frame: {e}")
                    return

                if payload and event_type in (CONTENT_DELTA_EVENT, "message_start"):
                    try:
                        yield SSEMessage(data=_decode_payload(payload), event=event_type)
                    except ProtocolError as e:
                        logger.debug(f"Skipping frame: {e}")
    except httpx.HTTPError as e:
        logger.warning(f"SSE stream read failed: {e}")


async def parse_sse(
    chunks: AsyncIterable[bytes],
    on_data: Callable[[dict[str, Any]], None],
    on_done: Callable[[], None],
) -> None:
    """Callback form of :func:`iter_sse`; ``on_done`` fires exactly once."""
    try:
        async for message in iter_sse(chunks):
            on_data(message.data)
    finally:
        on_done()


async def parse_typed_sse(
    chunks: AsyncIterable[bytes],
    on_data: Callable[[dict[str, Any]], None],
    on_done: Callable[[], None],
    on_meta: Optional[Callable[[str, dict[str, Any]], None]] = None,
) -> None:
    """Callback form of :func:`iter_typed_sse`.

    Only content deltas reach ``on_data``; metadata events go to ``on_meta``.
    ``on_done`` fires exactly once.
    """
    try:
        async for message in iter_typed_sse(chunks):
            if message.event == CONTENT_DELTA_EVENT:
                on_data(message.data)
            elif on_meta is not None:
                on_meta(message.event or "", message.data)
    finally:
        on_done()
