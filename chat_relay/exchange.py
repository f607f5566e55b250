# chat_relay/exchange.py
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from chat_relay.llm.classifier import ErrorOutcome

Sender = Literal["user", "ai", "system"]


class ExchangeStatus(Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = (ExchangeStatus.COMPLETE, ExchangeStatus.FAILED)


class ExchangeStateError(RuntimeError):
    """An exchange was asked to make a transition its status forbids."""


class DisplayMessage(BaseModel):
    """One entry in the client's rendered message list."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    text: str = ""
    sender: Sender


class Exchange(BaseModel):
    """
    One user-message-to-model-reply cycle.

    `ai_text` only grows while streaming and is frozen once the exchange
    completes or fails; a failed exchange drops whatever it had accumulated.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_text: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    outcome: ErrorOutcome | None = None

    _ai_text: list[str] = PrivateAttr(default_factory=list)
    _status: ExchangeStatus = PrivateAttr(default=ExchangeStatus.PENDING)

    def model_post_init(self, __context) -> None:
        if not self.user_text.strip():
            raise ValueError("Exchange requires non-empty user text")

    @property
    def status(self) -> ExchangeStatus:
        return self._status

    @property
    def ai_text(self) -> str:
        return "".join(self._ai_text)

    @property
    def is_finished(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def begin_streaming(self) -> None:
        if self._status != ExchangeStatus.PENDING:
            raise ExchangeStateError(f"cannot start streaming from {self._status.value}")
        self._status = ExchangeStatus.STREAMING

    def append(self, fragment: str) -> str:
        """Append a fragment and return the full text so far."""
        if self._status != ExchangeStatus.STREAMING:
            raise ExchangeStateError(f"cannot append while {self._status.value}")
        if fragment:
            self._ai_text.append(fragment)
        return self.ai_text

    def complete(self) -> None:
        if self.is_finished:
            raise ExchangeStateError(f"exchange already {self._status.value}")
        self._status = ExchangeStatus.COMPLETE

    def fail(self, outcome: ErrorOutcome) -> None:
        if self.is_finished:
            raise ExchangeStateError(f"exchange already {self._status.value}")
        self._ai_text.clear()
        self.outcome = outcome
        self._status = ExchangeStatus.FAILED
