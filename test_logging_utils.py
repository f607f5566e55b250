#!/usr/bin/env python3
"""
Test script for logging utilities.

This validates that the centralized logging helpers behave correctly.
"""

import logging

import pytest

from conftest import sse_event
from chat_relay.llm import client as client_module
from chat_relay.logging_utils import (
    ContextualLogger,
    configure_logging,
    log_operation,
    operation_context,
)


class TestDecorators:
    """Test logging decorators."""

    @pytest.mark.asyncio
    async def test_log_operation_success(self):
        """Test log_operation decorator with successful function."""

        @log_operation("test_operation", log_timing=True)
        async def successful_function():
            return "success"

        result = await successful_function()
        assert result == "success"

    @pytest.mark.asyncio
    async def test_log_operation_with_error(self):
        """Test log_operation decorator with function that raises error."""

        @log_operation("test_operation", log_timing=True)
        async def failing_function():
            raise ValueError("Test error")

        with pytest.raises(ValueError, match="Test error"):
            await failing_function()

    @pytest.mark.asyncio
    async def test_log_operation_preserves_metadata(self):
        """Decorated coroutine keeps its name and docstring."""

        @log_operation("test_operation", log_args=True)
        async def named_function(value):
            """Doc."""
            return value * 2

        assert named_function.__name__ == "named_function"
        assert named_function.__doc__ == "Doc."
        assert await named_function(21) == 42


class TestContextManager:
    """Test operation context manager."""

    @pytest.mark.asyncio
    async def test_operation_context_success(self):
        """Test operation context manager with successful operation."""

        async with operation_context("test_operation", log_timing=True) as logger:
            assert logger is not None

    @pytest.mark.asyncio
    async def test_operation_context_with_error(self):
        """Test operation context manager with failing operation."""

        with pytest.raises(ValueError, match="Test error"):
            async with operation_context("test_operation", log_timing=True):
                raise ValueError("Test error")

    @pytest.mark.asyncio
    async def test_upstream_open_runs_inside_operation_context(
        self, monkeypatch, upstream, provider
    ):
        """Opening the provider stream is logged as one timed operation."""
        operations = []

        def recording_context(operation, **kwargs):
            operations.append((operation, kwargs.get("context", {})))
            return operation_context(operation, **kwargs)

        monkeypatch.setattr(client_module, "operation_context", recording_context)
        provider.chunks = [sse_event("Hi")]

        response = await upstream.open_stream("hello")
        await response.aclose()

        assert [name for name, _ in operations] == ["open_upstream_stream"]
        assert operations[0][1]["model"] == "gpt-test"


class TestContextualLogger:
    """Test ContextualLogger."""

    def test_bind_merges_context(self):
        base = ContextualLogger({"component": "relay"})
        bound = base.bind(exchange_id="abc")
        assert bound.base_context == {"component": "relay", "exchange_id": "abc"}
        assert base.base_context == {"component": "relay"}

    def test_logging_methods_do_not_raise(self):
        log = ContextualLogger({"exchange_id": "abc"})
        log.debug("debug", value=1)
        log.info("info", value=2)
        log.warning("warning", value=3)
        log.error("error", value=4)


def test_configure_logging_sets_root_level():
    configure_logging("warning")
    assert logging.getLogger().level == logging.WARNING
    configure_logging(logging.INFO)
    assert logging.getLogger().level == logging.INFO
