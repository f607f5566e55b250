"""
Incremental decoder for OpenAI-style `data: <json>` event streams.

Chunks arrive in transport order and may split or merge events arbitrarily.
Only complete lines are decoded, so the fragment sequence does not depend on
where the chunk boundaries fall.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import structlog

from ..exceptions import StreamingError
from .models import (
    DATA_PREFIX,
    DONE_SENTINEL,
    LineType,
    ParsedLine,
    ParserStats,
    ResidualBuffer,
)

logger = structlog.get_logger(__name__)


class FrameParser:
    """Per-exchange event-stream decoder holding a residual partial line."""

    def __init__(self, exchange_id: str | None = None):
        self._residual = ResidualBuffer()
        self._done = False
        self._exhausted = False
        self.stats = ParserStats()
        self._log = logger.bind(exchange_id=exchange_id) if exchange_id else logger

    @property
    def done(self) -> bool:
        """True once the termination sentinel has been seen."""
        return self._done

    def feed(self, chunk: bytes) -> list[str]:
        """
        Decode one raw chunk.

        Args:
            chunk: Bytes as delivered by the transport

        Returns:
            Fragments completed by this chunk, in arrival order
        """
        if self._exhausted:
            raise StreamingError("FrameParser.feed() called after finish()")
        if self._done:
            return []

        self.stats.bytes_received += len(chunk)
        fragments: list[str] = []
        for raw_line in self._residual.take_lines(chunk):
            fragment = self._handle_line(raw_line)
            if fragment:
                fragments.append(fragment)
            if self._done:
                self._residual.drain()
                break
        return fragments

    def finish(self) -> list[str]:
        """Decode whatever line is left once the upstream body has ended."""
        if self._exhausted:
            return []
        self._exhausted = True
        rest = self._residual.drain()
        if self._done or not rest.strip():
            return []
        fragment = self._handle_line(rest)
        return [fragment] if fragment else []

    async def parse(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """Lazily yield fragments from a chunk stream, stopping at the sentinel."""
        async for chunk in chunks:
            for fragment in self.feed(chunk):
                yield fragment
            if self._done:
                break
        for fragment in self.finish():
            yield fragment

    def _handle_line(self, raw_line: bytes) -> str | None:
        parsed = self.parse_line(raw_line)

        if parsed.line_type == LineType.IGNORED:
            self.stats.ignored_lines += 1
            return None

        self.stats.events += 1
        if parsed.line_type == LineType.COMPLETION:
            self._done = True
            self._log.debug("Upstream stream completed", **self.stats.as_dict())
            return None
        if parsed.line_type == LineType.NOISE:
            self.stats.noise_lines += 1
            self._log.warning(
                "Skipping malformed stream line",
                error_category="parse_noise",
                error=parsed.error,
            )
            return None
        if parsed.line_type == LineType.CONTENT:
            self.stats.fragments += 1
            return parsed.fragment
        return None

    @staticmethod
    def parse_line(raw_line: bytes) -> ParsedLine:
        """Classify and decode a single complete line."""
        try:
            line = raw_line.decode("utf-8").rstrip("\r")
        except UnicodeDecodeError as e:
            return ParsedLine(LineType.NOISE, error=f"UTF-8 decode error: {e}")

        if not line.startswith(DATA_PREFIX):
            return ParsedLine(LineType.IGNORED)

        data = line[len(DATA_PREFIX):]
        if data.startswith(" "):
            data = data[1:]

        if data.strip() == DONE_SENTINEL:
            return ParsedLine(LineType.COMPLETION)

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            return ParsedLine(LineType.NOISE, error=f"JSON decode error: {e}")

        content = extract_delta_content(payload)
        if content:
            return ParsedLine(LineType.CONTENT, fragment=content, payload=payload)
        return ParsedLine(
            LineType.EMPTY_DELTA,
            payload=payload if isinstance(payload, dict) else None,
        )

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return self.stats.as_dict()

    def reset_stats(self) -> None:
        self.stats = ParserStats()


def extract_delta_content(payload: Any) -> str | None:
    """Return `choices[0].delta.content` when it is a string, else None."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None
