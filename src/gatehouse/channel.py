"""Commands addressed to the connection actor that owns a client session.

The connection actor itself lives outside this package. It is reached
through a ``ConnectionRef`` (anything with ``tell``) and answers requests by
telling its reply to the ``reply_to`` reference carried in each message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TYPE_CHECKING, TypeAlias, TypeVar

from gatehouse.result import NOT_FOUND, TIMEOUT, Error, Ok, Result

if TYPE_CHECKING:
    from gatehouse.registry import SessionRegistry

__all__ = [
    "ChannelCommandClient",
    "ConnectionRef",
    "ConnectionMsg",
    "DEFAULT_CALL_TIMEOUT",
    "GetSubscriptions",
    "Kick",
    "ReplyRef",
    "SubscribeTopic",
    "UnsubscribeTopic",
    "ask",
]

logger = logging.getLogger("gatehouse.channel")

R = TypeVar("R")

DEFAULT_CALL_TIMEOUT: float = 15.0


class ConnectionRef(Protocol):
    """Handle to a live connection actor, used for fire-and-forget messaging."""

    def tell(self, msg: Any) -> None: ...


@dataclass(frozen=True)
class ReplyRef:
    """Temporary reference that completes a pending ``ask``."""

    id: str
    _deliver: Callable[[Any], None]

    def tell(self, msg: Any) -> None:
        self._deliver(msg)


@dataclass(frozen=True)
class GetSubscriptions:
    """Ask for ``[(topic, options), ...]``."""

    reply_to: ConnectionRef


@dataclass(frozen=True)
class SubscribeTopic:
    topic: str
    options: dict[str, Any]
    reply_to: ConnectionRef


@dataclass(frozen=True)
class UnsubscribeTopic:
    topic: str
    reply_to: ConnectionRef


@dataclass(frozen=True)
class Kick:
    """Terminate the session. No reply is expected."""


ConnectionMsg: TypeAlias = GetSubscriptions | SubscribeTopic | UnsubscribeTopic | Kick


async def ask(
    ref: ConnectionRef,
    msg_factory: Callable[[ConnectionRef], Any],
    *,
    timeout: float,
) -> R:
    """Send a message and wait for a reply (request-reply pattern).

    Only the awaiting task is suspended; other actors are unaffected.

    Raises
    ------
    TimeoutError
        If no reply arrives within *timeout* seconds.
    """
    future: asyncio.Future[R] = asyncio.get_running_loop().create_future()

    def on_reply(msg: Any) -> None:
        if not future.done():
            future.set_result(msg)

    reply_to = ReplyRef(id=f"_ask/{id(future)}", _deliver=on_reply)
    ref.tell(msg_factory(reply_to))
    return await asyncio.wait_for(future, timeout=timeout)


def _as_result(reply: Any) -> Result[Any]:
    if isinstance(reply, Ok | Error):
        return reply
    return Ok(reply)


class ChannelCommandClient:
    """Issues subscription commands to connection actors on this node only.

    Parameters
    ----------
    registry : SessionRegistry
        Node-local registry used to find the connection actor.
    timeout : float
        Seconds to wait for the actor's reply.
    """

    def __init__(
        self, registry: SessionRegistry, *, timeout: float = DEFAULT_CALL_TIMEOUT
    ) -> None:
        self._registry = registry
        self._timeout = timeout

    async def with_channel(
        self,
        gateway: str,
        client_id: str,
        command_fn: Callable[[ConnectionRef], Awaitable[R]],
    ) -> R | Error:
        """Run *command_fn* against the client's connection actor.

        Returns ``Error(NOT_FOUND)`` without calling *command_fn* when no
        connection actor is registered for the client on this node.
        """
        ref = self._registry.lookup_channel(gateway, client_id)
        if ref is None:
            logger.debug("No channel for %s/%s", gateway, client_id)
            return Error(NOT_FOUND)
        return await command_fn(ref)

    async def _call(
        self, ref: ConnectionRef, msg_factory: Callable[[ConnectionRef], Any]
    ) -> Result[Any]:
        try:
            reply = await ask(ref, msg_factory, timeout=self._timeout)
        except TimeoutError:
            logger.warning("Connection actor did not reply within %.1fs", self._timeout)
            return Error(TIMEOUT)
        return _as_result(reply)

    async def list_subscriptions(
        self, gateway: str, client_id: str
    ) -> Result[list[dict[str, Any]]]:
        async def command(ref: ConnectionRef) -> Result[list[dict[str, Any]]]:
            match await self._call(ref, GetSubscriptions):
                case Ok(subs):
                    return Ok(
                        [{**options, "topic": topic} for topic, options in subs or ()]
                    )
                case error:
                    return error

        return await self.with_channel(gateway, client_id, command)

    async def subscribe(
        self, gateway: str, client_id: str, topic: str, options: dict[str, Any]
    ) -> Result[Any]:
        return await self.with_channel(
            gateway,
            client_id,
            lambda ref: self._call(
                ref, lambda reply_to: SubscribeTopic(topic, options, reply_to)
            ),
        )

    async def unsubscribe(
        self, gateway: str, client_id: str, topic: str
    ) -> Result[Any]:
        return await self.with_channel(
            gateway,
            client_id,
            lambda ref: self._call(
                ref, lambda reply_to: UnsubscribeTopic(topic, reply_to)
            ),
        )
