"""
Client-side consumer for the relay's plain-text stream.

The consumer owns the rendered message list. Each submitted message adds a
user entry and an AI placeholder; the placeholder either grows into the full
reply or is replaced by exactly one system message explaining the failure.
"""

from __future__ import annotations

import codecs
from collections.abc import Callable

import httpx

from chat_relay.exchange import DisplayMessage, Exchange, ExchangeStatus
from chat_relay.llm.classifier import ErrorClassifier, ErrorKind, ErrorOutcome
from chat_relay.logging_utils import ContextualLogger, log_operation

UpdateCallback = Callable[[list[DisplayMessage]], None]


class ExchangeConsumer:
    """Sends one request per user message and renders the streamed reply."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        on_update: UpdateCallback | None = None,
        chat_path: str = "/api/chat",
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url
        self.chat_path = chat_path
        self.on_update = on_update
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._messages: list[DisplayMessage] = []
        self.is_loading = False
        self.exchanges: list[Exchange] = []
        self._log = ContextualLogger({"component": "exchange_consumer"})

    @property
    def messages(self) -> list[DisplayMessage]:
        """Snapshot of the rendered message list."""
        return [m.model_copy() for m in self._messages]

    @log_operation("submit_message")
    async def submit(self, text: str) -> Exchange | None:
        """
        Run one exchange for `text`.

        Returns:
            The finished exchange, or None when the input was blank
        """
        if not text or not text.strip():
            return None

        exchange = Exchange(user_text=text)
        self.exchanges.append(exchange)
        log = self._log.bind(exchange_id=exchange.id)

        self._messages.append(DisplayMessage(text=text, sender="user"))
        placeholder = DisplayMessage(id=exchange.id, sender="ai")
        self._messages.append(placeholder)
        self.is_loading = True
        self._render()

        try:
            async with self.client.stream(
                "POST", self.chat_path, json={"message": text}
            ) as response:
                if not response.is_success:
                    await response.aread()
                    outcome = ErrorClassifier.classify_status(response.status_code)
                    log.warning(
                        "Exchange rejected",
                        status_code=response.status_code,
                        error_category=outcome.kind.value,
                    )
                    self._replace_placeholder(exchange, placeholder, outcome)
                    return exchange

                await self._read_stream(exchange, placeholder, response)
        except httpx.RequestError as e:
            log.error(
                "Network failure during exchange",
                error_type=type(e).__name__,
                error_message=str(e),
                received=len(exchange.ai_text),
            )
            self._replace_placeholder(
                exchange, placeholder, ErrorClassifier.outcome(ErrorKind.NETWORK_ERROR)
            )
            return exchange
        finally:
            self.is_loading = False
            self._render()

        exchange.complete()
        log.info("Exchange complete", characters=len(exchange.ai_text))
        return exchange

    async def _read_stream(
        self,
        exchange: Exchange,
        placeholder: DisplayMessage,
        response: httpx.Response,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async for chunk in response.aiter_bytes():
            segment = decoder.decode(chunk)
            if segment:
                self._append(exchange, placeholder, segment)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._append(exchange, placeholder, tail)

    def _append(
        self, exchange: Exchange, placeholder: DisplayMessage, segment: str
    ) -> None:
        if exchange.status == ExchangeStatus.PENDING:
            exchange.begin_streaming()
        placeholder.text = exchange.append(segment)
        self._render()

    def _replace_placeholder(
        self,
        exchange: Exchange,
        placeholder: DisplayMessage,
        outcome: ErrorOutcome,
    ) -> None:
        exchange.fail(outcome)
        self._messages = [m for m in self._messages if m.id != placeholder.id]
        self._messages.append(DisplayMessage(text=outcome.user_message, sender="system"))

    def _render(self) -> None:
        if self.on_update is not None:
            self.on_update(self.messages)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> ExchangeConsumer:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
