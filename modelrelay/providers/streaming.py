"""Incremental decoders for the streaming bodies of each vendor.

Each vendor frames its stream differently:

- NDJSONDecoder: newline-delimited JSON objects carrying a ``response``
  fragment, ending with an object flagged ``done`` (Ollama).
- SSEDecoder: Server-Sent-Events ``data: {...}`` lines ending with a literal
  ``data: [DONE]`` sentinel; the fragment is ``choices[0].delta.content``
  (OpenAI and OpenAI-compatible servers).
- TypedSSEDecoder: SSE with ``event:``/``data:`` pairs where only
  ``content_block_delta`` objects carry ``delta.text`` (Anthropic).

Decoders are push-based and transport agnostic: feed raw byte chunks as they
arrive and collect the fragments that became complete. A partial trailing
line is kept until its terminator shows up, so the fragment sequence does not
depend on how the body was chunked. Individual malformed lines are skipped;
a stream in which no line looked like valid framing raises DecodeError.

Example:
    >>> decoder = SSEDecoder()
    >>> decoder.feed(b'data: {"choices": [{"delta": {"content": "Hel')
    []
    >>> decoder.feed(b'lo"}}]}\\n\\ndata: [DONE]\\n')
    ['Hello']
    >>> decoder.finished
    True
"""

from __future__ import annotations

import codecs
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, List, Optional

from ..errors import BackendError, DecodeError
from ..observability.logging import get_logger

logger = get_logger(__name__)


class MalformedFrame(ValueError):
    """A single line that does not follow the vendor's framing."""


class StreamDecoder(ABC):
    """Line-buffering state machine shared by every vendor decoder."""

    vendor = "unknown"

    def __init__(self) -> None:
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._finished = False
        self._lines_seen = 0
        self._frames_recognized = 0

    @property
    def finished(self) -> bool:
        """True once a terminal frame was seen or the input was flushed."""
        return self._finished

    def feed(self, chunk: bytes) -> List[str]:
        """Consume one raw chunk and return the fragments it completed."""
        if self._finished:
            return []
        self._buffer += self._text_decoder.decode(chunk)
        return self._drain_complete_lines()

    def flush(self) -> List[str]:
        """
        Signal end of input.

        The last unterminated line is parsed once. Raises DecodeError if the
        body contained lines but none of them were recognisable frames.
        """
        if self._finished:
            return []
        self._buffer += self._text_decoder.decode(b"", final=True)
        fragments = self._drain_complete_lines()
        if not self._finished and self._buffer:
            line, self._buffer = self._buffer, ""
            fragments.extend(self._process_line(line))
        if not self._finished and self._lines_seen and not self._frames_recognized:
            self._finished = True
            raise DecodeError(
                f"Stream body is not valid {self.vendor} framing "
                f"({self._lines_seen} unreadable lines)",
                provider=self.vendor,
            )
        self._finished = True
        return fragments

    def _drain_complete_lines(self) -> List[str]:
        fragments: List[str] = []
        while not self._finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            fragments.extend(self._process_line(line))
        return fragments

    def _process_line(self, line: str) -> List[str]:
        line = line.rstrip("\r")
        if not line.strip():
            return []
        self._lines_seen += 1
        try:
            fragment = self.parse_line(line)
        except (MalformedFrame, json.JSONDecodeError) as e:
            logger.debug(f"Skipping malformed {self.vendor} stream line: {line[:120]!r} ({e})")
            return []
        self._frames_recognized += 1
        if fragment:
            return [fragment]
        return []

    def _mark_finished(self) -> None:
        self._finished = True

    @staticmethod
    def _load_object(payload: str) -> dict:
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise MalformedFrame(f"expected a JSON object, got {type(data).__name__}")
        return data

    @abstractmethod
    def parse_line(self, line: str) -> Optional[str]:
        """
        Interpret one complete, non-blank line.

        Returns:
            The text fragment carried by the frame, or None for frames with
            no text payload

        Raises:
            MalformedFrame: The line is not a valid frame for this vendor
            BackendError: The frame reports a vendor-side error
        """


class NDJSONDecoder(StreamDecoder):
    """Newline-delimited JSON objects with a terminal ``done`` flag."""

    vendor = "ollama"

    def parse_line(self, line: str) -> Optional[str]:
        data = self._load_object(line)
        if data.get("error"):
            raise BackendError(f"Ollama stream error: {data['error']}", provider=self.vendor)

        text = data.get("response")
        if text is None and isinstance(data.get("message"), dict):
            text = data["message"].get("content")
        if data.get("done"):
            self._mark_finished()
        return text if isinstance(text, str) else None


def _split_sse_field(line: str) -> tuple:
    name, _, value = line.partition(":")
    if value.startswith(" "):
        value = value[1:]
    return name, value


class SSEDecoder(StreamDecoder):
    """Plain SSE ``data:`` lines terminated by ``data: [DONE]``."""

    vendor = "openai"
    DONE_SENTINEL = "[DONE]"

    def parse_line(self, line: str) -> Optional[str]:
        if line.startswith(":"):
            return None
        name, value = _split_sse_field(line)
        if name in ("event", "id", "retry"):
            return None
        if name != "data":
            raise MalformedFrame(f"unknown SSE field '{name}'")

        payload = value.strip()
        if payload == self.DONE_SENTINEL:
            self._mark_finished()
            return None

        data = self._load_object(payload)
        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise BackendError(f"Stream error: {message}", provider=self.vendor)

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        delta = first.get("delta") if isinstance(first, dict) else None
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) else None


class TypedSSEDecoder(StreamDecoder):
    """SSE with typed events; only ``content_block_delta`` carries text."""

    vendor = "anthropic"

    def __init__(self) -> None:
        super().__init__()
        self._event: Optional[str] = None

    def parse_line(self, line: str) -> Optional[str]:
        if line.startswith(":"):
            return None
        name, value = _split_sse_field(line)
        if name == "event":
            self._event = value.strip()
            return None
        if name in ("id", "retry"):
            return None
        if name != "data":
            raise MalformedFrame(f"unknown SSE field '{name}'")

        payload = value.strip()
        if payload == "[DONE]":
            self._mark_finished()
            return None

        data = self._load_object(payload)
        event_type = data.get("type") or self._event

        if event_type == "error":
            error: Any = data.get("error") or {}
            message = error.get("message", error) if isinstance(error, dict) else error
            raise BackendError(f"Anthropic stream error: {message}", provider=self.vendor)
        if event_type == "message_stop":
            self._mark_finished()
            return None
        if event_type != "content_block_delta":
            return None

        delta = data.get("delta")
        if not isinstance(delta, dict):
            return None
        text = delta.get("text")
        return text if isinstance(text, str) else None


async def decode_stream(decoder: StreamDecoder, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Run an async byte stream through ``decoder``, yielding text fragments."""
    async for chunk in chunks:
        for fragment in decoder.feed(chunk):
            yield fragment
        if decoder.finished:
            return
    for fragment in decoder.flush():
        yield fragment


__all__ = [
    "MalformedFrame",
    "StreamDecoder",
    "NDJSONDecoder",
    "SSEDecoder",
    "TypedSSEDecoder",
    "decode_stream",
]
