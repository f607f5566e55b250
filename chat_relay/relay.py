"""
Server-side relay for one chat exchange.

A relay has two phases. Before commitment every failure is reported as an
ExchangeFailed carrying one classified outcome, which the HTTP layer turns
into a status code and JSON body. Once `stream()` is called the response is
committed as a successful text stream, and later failures can only be
reported in-band as trailing text.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from enum import Enum
from typing import NoReturn

import httpx

from .llm.classifier import ErrorClassifier, ErrorKind, ErrorOutcome
from .llm.client import UpstreamClient
from .llm.exceptions import ExchangeFailed
from .llm.streaming.parser import FrameParser
from .logging_utils import ContextualLogger

ERROR_TRAILER_PREFIX = "\n\nError occurred: "


class RelayPhase(Enum):
    """Commitment state of the downstream response."""
    PRE_COMMIT = "pre_commit"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamRelay:
    """Relays one user message to the provider and streams fragments back."""

    def __init__(
        self,
        upstream: UpstreamClient,
        classifier: type[ErrorClassifier] = ErrorClassifier,
        exchange_id: str | None = None,
    ):
        self.upstream = upstream
        self.classifier = classifier
        self.exchange_id = exchange_id or uuid.uuid4().hex
        self.phase = RelayPhase.PRE_COMMIT
        self.outcome: ErrorOutcome | None = None
        self.parser = FrameParser(exchange_id=self.exchange_id)
        self._response: httpx.Response | None = None
        self._log = ContextualLogger({"exchange_id": self.exchange_id})

    async def start(self, message: str | None) -> None:
        """
        Validate the message and open the upstream stream.

        Raises:
            ExchangeFailed: With the single outcome for a pre-commit failure
            RuntimeError: If the relay has already committed
        """
        self._require_phase(RelayPhase.PRE_COMMIT, "start")
        if self._response is not None:
            raise RuntimeError("StreamRelay.start() called twice")

        if not message or not message.strip():
            self._fail(self.classifier.outcome(ErrorKind.BAD_REQUEST), reason="empty message")

        if not self.upstream.has_credential:
            self._fail(self.classifier.missing_credential(), reason="missing credential")

        try:
            response = await self.upstream.open_stream(message)
        except httpx.TransportError as e:
            self._fail(self.classifier.classify_exception(e), reason=type(e).__name__)

        if not response.is_success:
            body = await self._read_error_body(response)
            outcome = self.classifier.classify_status(response.status_code, body)
            self._fail(
                outcome,
                reason="upstream status",
                status_code=response.status_code,
                detail=self.classifier.error_detail(body),
            )

        if not self.upstream.is_event_stream(response):
            content_type = response.headers.get("content-type", "")
            await response.aclose()
            self._fail(
                self.classifier.outcome(ErrorKind.UPSTREAM_ERROR),
                reason="unexpected content type",
                content_type=content_type,
            )

        self._response = response
        self._log.info("Upstream stream opened", status_code=response.status_code)

    async def stream(self) -> AsyncIterator[bytes]:
        """
        Commit to streaming and yield encoded fragments as they decode.

        The upstream response is closed on every exit path, including when the
        consumer stops iterating early.
        """
        self._require_phase(RelayPhase.PRE_COMMIT, "stream")
        if self._response is None:
            raise RuntimeError("StreamRelay.stream() called before a successful start()")
        self.phase = RelayPhase.STREAMING
        response = self._response

        delivered = 0
        try:
            try:
                async for fragment in self.parser.parse(response.aiter_bytes()):
                    delivered += 1
                    yield fragment.encode("utf-8")
            except httpx.HTTPError as e:
                self.outcome = self.classifier.classify_exception(e)
                self._log.error(
                    "Upstream stream failed after commit",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    error_category=self.outcome.kind.value,
                    fragments=delivered,
                )
                yield (ERROR_TRAILER_PREFIX + self.outcome.user_message).encode("utf-8")
                return

            self._log.info(
                "Exchange relayed", fragments=delivered, **self.parser.get_stats()
            )
        except (GeneratorExit, asyncio.CancelledError):
            self._log.info("Downstream disconnected", fragments=delivered)
            raise
        finally:
            self.phase = RelayPhase.CLOSED
            await response.aclose()

    async def aclose(self) -> None:
        """Release the upstream response in any phase. Safe to call repeatedly."""
        if self._response is not None:
            await self._response.aclose()
        self.phase = RelayPhase.CLOSED

    def _require_phase(self, expected: RelayPhase, action: str) -> None:
        if self.phase != expected:
            raise RuntimeError(
                f"Cannot {action}: relay is {self.phase.value}, expected {expected.value}"
            )

    def _fail(self, outcome: ErrorOutcome, **context) -> NoReturn:
        self.outcome = outcome
        self.phase = RelayPhase.CLOSED
        self._log.warning(
            "Exchange failed before streaming",
            error_category=outcome.kind.value,
            http_status=outcome.http_status,
            **context,
        )
        raise ExchangeFailed(
            outcome,
            provider=self.upstream.config.provider.value,
            model=self.upstream.config.model,
            status_code=context.get("status_code"),
        )

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> object:
        try:
            await response.aread()
            try:
                return response.json()
            except ValueError:
                return response.text
        except httpx.TransportError:
            return None
        finally:
            await response.aclose()
