"""
Terminal chat client.

Reads one message per line, prints the AI reply as it streams in, and prints
a system line in place of the reply when the exchange fails.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TextIO

from chat_relay.config import Configuration
from chat_relay.consumer import ExchangeConsumer
from chat_relay.exchange import DisplayMessage
from chat_relay.logging_utils import configure_logging

PROMPT = "> "
EXIT_COMMANDS = {"/quit", "/exit"}


class TerminalRenderer:
    """Prints only what changed since the last update."""

    def __init__(self, out: TextIO = sys.stdout):
        self.out = out
        self._seen: set[str] = set()
        self._printed: dict[str, int] = {}

    def __call__(self, messages: list[DisplayMessage]) -> None:
        for message in messages:
            if message.sender == "ai":
                printed = self._printed.get(message.id, 0)
                if len(message.text) > printed:
                    self.out.write(message.text[printed:])
                    self.out.flush()
                    self._printed[message.id] = len(message.text)
            elif message.sender == "system" and message.id not in self._seen:
                self._seen.add(message.id)
                if any(self._printed.values()):
                    self.out.write("\n")
                self.out.write(f"[system] {message.text}")
                self.out.flush()

    def end_exchange(self) -> None:
        self.out.write("\n")
        self.out.flush()
        self._printed.clear()


async def repl(consumer: ExchangeConsumer, renderer: TerminalRenderer) -> None:
    while True:
        try:
            line = await asyncio.to_thread(input, PROMPT)
        except EOFError:
            break
        if line.strip() in EXIT_COMMANDS:
            break
        if await consumer.submit(line) is not None:
            renderer.end_exchange()


async def run(base_url: str | None = None) -> None:
    configuration = Configuration()
    configure_logging("WARNING")
    client_config = configuration.get_client_config()
    server_config = configuration.get_server_config()

    renderer = TerminalRenderer()
    async with ExchangeConsumer(
        base_url or client_config["base_url"],
        on_update=renderer,
        chat_path=f"{server_config['api_prefix']}/chat",
        timeout=client_config["timeout"],
    ) as consumer:
        await repl(consumer, renderer)


def main() -> None:
    base_url = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        asyncio.run(run(base_url))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
