"""
Streaming functionality for the relay.

This package contains:
- Event-stream line decoding
- Partial-line reassembly across reads
- Parse-noise accounting
"""

from .parser import FrameParser, extract_delta_content

__all__ = ["FrameParser", "extract_delta_content"]
