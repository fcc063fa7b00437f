"""Remote call transport interface.

``RpcClient.call`` either returns the peer's result unchanged or raises
``RpcError`` carrying a ``TransportFailure``. ``LocalRpcNetwork`` is an
in-process implementation where every node of the cluster lives in the same
event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeAlias, runtime_checkable

from gatehouse.membership import NodeId
from gatehouse.result import TransportFailure

__all__ = ["LocalRpcNetwork", "RpcClient", "RpcError", "RpcHandler"]

logger = logging.getLogger("gatehouse.rpc")

RpcHandler: TypeAlias = Callable[[str, list[Any]], Awaitable[Any]]


class RpcError(Exception):
    """A remote call did not complete."""

    def __init__(self, failure: TransportFailure) -> None:
        super().__init__(f"{failure.kind}: {failure.detail}")
        self.failure = failure


@runtime_checkable
class RpcClient(Protocol):
    async def call(
        self,
        node: NodeId,
        operation: str,
        args: Sequence[Any],
        *,
        timeout: float,
    ) -> Any:
        """Run *operation* with *args* on *node*.

        Raises
        ------
        RpcError
            If the node is unreachable, the call times out, or the payload
            cannot be carried.
        """
        ...


class LocalRpcNetwork:
    """In-process transport routing calls by node id.

    Examples
    --------
    >>> network = LocalRpcNetwork()
    >>> network.register("b@local", handler)
    >>> client = network.client("a@local")
    >>> # await client.call("b@local", "kick", ["mqtt", "c1"], timeout=1.0)
    """

    def __init__(self) -> None:
        self._handlers: dict[NodeId, RpcHandler] = {}

    def register(self, node: NodeId, handler: RpcHandler) -> None:
        if node in self._handlers:
            raise ValueError(f"Node '{node}' is already registered")
        self._handlers[node] = handler

    def unregister(self, node: NodeId) -> None:
        self._handlers.pop(node, None)

    def client(self, origin: NodeId) -> _LocalRpcClient:
        return _LocalRpcClient(self, origin)

    def handler_for(self, node: NodeId) -> RpcHandler | None:
        return self._handlers.get(node)


class _LocalRpcClient:
    def __init__(self, network: LocalRpcNetwork, origin: NodeId) -> None:
        self._network = network
        self._origin = origin

    async def call(
        self,
        node: NodeId,
        operation: str,
        args: Sequence[Any],
        *,
        timeout: float,
    ) -> Any:
        handler = self._network.handler_for(node)
        if handler is None:
            raise RpcError(TransportFailure("nodedown", node))
        logger.debug("%s -> %s: %s", self._origin, node, operation)
        try:
            return await asyncio.wait_for(handler(operation, list(args)), timeout=timeout)
        except TimeoutError:
            raise RpcError(
                TransportFailure("timeout", f"{operation} on {node} after {timeout}s")
            ) from None
        except Exception as exc:
            raise RpcError(TransportFailure("remote", repr(exc))) from exc
