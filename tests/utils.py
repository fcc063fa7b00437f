"""Test connection actors and helpers for gatehouse tests."""

from __future__ import annotations

import asyncio
from typing import Any

from gatehouse import GetSubscriptions, Kick, Ok, SubscribeTopic, UnsubscribeTopic

NODES = ["a@local", "b@local", "c@local"]


class FakeConnection:
    """Connection actor that answers every request immediately."""

    def __init__(self, subscriptions: dict[str, dict[str, Any]] | None = None) -> None:
        self.subscriptions: dict[str, dict[str, Any]] = dict(subscriptions or {})
        self.received: list[Any] = []
        self.kicked = False

    def tell(self, msg: Any) -> None:
        self.received.append(msg)
        match msg:
            case GetSubscriptions(reply_to):
                reply_to.tell(list(self.subscriptions.items()))
            case SubscribeTopic(topic, options, reply_to):
                self.subscriptions[topic] = options
                reply_to.tell(Ok())
            case UnsubscribeTopic(topic, reply_to):
                self.subscriptions.pop(topic, None)
                reply_to.tell(Ok())
            case Kick():
                self.kicked = True


class MailboxConnection(FakeConnection):
    """Connection actor that processes its mailbox on a separate task."""

    def __init__(self, subscriptions: dict[str, dict[str, Any]] | None = None) -> None:
        super().__init__(subscriptions)
        self._mailbox: asyncio.Queue[Any] = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def tell(self, msg: Any) -> None:
        self._mailbox.put_nowait(msg)

    async def _run(self) -> None:
        while True:
            msg = await self._mailbox.get()
            await asyncio.sleep(0)
            super().tell(msg)

    async def stop(self) -> None:
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)


class SilentConnection:
    """Connection actor that never replies."""

    def __init__(self) -> None:
        self.received: list[Any] = []

    def tell(self, msg: Any) -> None:
        self.received.append(msg)


async def hang(operation: str, args: list[Any]) -> Any:
    """RPC handler for a node that never answers."""
    await asyncio.Event().wait()
