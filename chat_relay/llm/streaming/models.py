"""
Streaming dataclasses for the upstream event-stream decoder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class LineType(Enum):
    """Classification of one upstream event-stream line."""
    CONTENT = "content"
    EMPTY_DELTA = "empty_delta"
    COMPLETION = "completion"
    IGNORED = "ignored"
    NOISE = "noise"


@dataclass(frozen=True)
class ParsedLine:
    """Result of decoding a single complete line."""
    line_type: LineType
    fragment: str | None = None
    payload: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class ParserStats:
    """Counters for one parser instance."""
    events: int = 0
    fragments: int = 0
    ignored_lines: int = 0
    noise_lines: int = 0
    bytes_received: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "events": self.events,
            "fragments": self.fragments,
            "ignored_lines": self.ignored_lines,
            "noise_lines": self.noise_lines,
            "bytes_received": self.bytes_received,
        }


@dataclass
class ResidualBuffer:
    """Bytes of a trailing partial line held between reads."""
    data: bytearray = field(default_factory=bytearray)

    def take_lines(self, chunk: bytes) -> list[bytes]:
        """Append chunk and return every complete line, keeping the remainder."""
        self.data.extend(chunk)
        if b"\n" not in self.data:
            return []
        *lines, rest = bytes(self.data).split(b"\n")
        self.data = bytearray(rest)
        return lines

    def drain(self) -> bytes:
        rest = bytes(self.data)
        self.data = bytearray()
        return rest

    def __len__(self) -> int:
        return len(self.data)
