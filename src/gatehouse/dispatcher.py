"""Routes an operation to the node it targets.

Operations on the local node run in-process. Anything else goes through the
``RpcClient`` with a bounded timeout, and transport failures come back as
``Error(TransportFailure(...))`` so callers see the same shape either way.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

from gatehouse.channel import DEFAULT_CALL_TIMEOUT, ChannelCommandClient
from gatehouse.local import FormatFn, LocalRegistryAccessor, identity_format
from gatehouse.membership import NodeId
from gatehouse.result import Error, TransportFailure
from gatehouse.rpc import RpcClient, RpcError

__all__ = ["Operation", "RemoteDispatcher"]

logger = logging.getLogger("gatehouse.dispatcher")


class Operation(StrEnum):
    lookup = "lookup"
    kick = "kick"
    subscriptions = "subscriptions"
    subscribe = "subscribe"
    unsubscribe = "unsubscribe"


class RemoteDispatcher:
    """Runs operations locally or on a peer.

    Parameters
    ----------
    local_node : NodeId
        Identifier of the node this dispatcher runs on.
    accessor : LocalRegistryAccessor
        Local reads and kicks.
    channels : ChannelCommandClient
        Local connection actor commands.
    rpc : RpcClient
        Transport used for every other node.
    timeout : float
        Seconds allowed for each remote call.
    """

    def __init__(
        self,
        local_node: NodeId,
        accessor: LocalRegistryAccessor,
        channels: ChannelCommandClient,
        rpc: RpcClient,
        *,
        timeout: float = DEFAULT_CALL_TIMEOUT,
    ) -> None:
        self._local_node = local_node
        self._accessor = accessor
        self._channels = channels
        self._rpc = rpc
        self._timeout = timeout

    @property
    def local_node(self) -> NodeId:
        return self._local_node

    async def dispatch(
        self, node: NodeId, operation: Operation | str, args: Sequence[Any]
    ) -> Any:
        """Run *operation* on *node* and return its result or an ``Error``.

        Lookup formatters never cross the wire: the peer returns raw records
        and the formatter runs here.
        """
        operation = Operation(operation)
        if node == self._local_node:
            try:
                return await self.handle(operation, list(args))
            except Exception as exc:
                logger.warning("%s on local node %s failed: %r", operation, node, exc)
                return Error(TransportFailure("remote", repr(exc)))

        format_fn: FormatFn | None = None
        wire_args = list(args)
        if operation is Operation.lookup and len(wire_args) > 2:
            format_fn = wire_args.pop()

        try:
            result = await self._rpc.call(
                node, operation.value, wire_args, timeout=self._timeout
            )
        except RpcError as exc:
            logger.warning("%s on %s failed: %s", operation, node, exc)
            return Error(exc.failure)

        if format_fn is not None and isinstance(result, list):
            try:
                return [format_fn(record) for record in result]
            except Exception as exc:
                logger.warning("Formatting %s records from %s failed: %r", operation, node, exc)
                return Error(TransportFailure("remote", repr(exc)))
        return result

    async def handle(self, operation: Operation | str, args: list[Any]) -> Any:
        """Execute *operation* against this node's registry and channels.

        Also serves as the ``RpcHandler`` peers reach through the transport.
        """
        match Operation(operation), args:
            case Operation.lookup, [gateway, client_id]:
                return self._accessor.lookup(gateway, client_id, identity_format)
            case Operation.lookup, [gateway, client_id, format_fn]:
                return self._accessor.lookup(gateway, client_id, format_fn)
            case Operation.kick, [gateway, client_id]:
                return self._accessor.kick(gateway, client_id)
            case Operation.subscriptions, [gateway, client_id]:
                return await self._channels.list_subscriptions(gateway, client_id)
            case Operation.subscribe, [gateway, client_id, topic, options]:
                return await self._channels.subscribe(gateway, client_id, topic, options)
            case Operation.unsubscribe, [gateway, client_id, topic]:
                return await self._channels.unsubscribe(gateway, client_id, topic)
            case op, _:
                raise ValueError(f"Bad arguments for {op}: {args!r}")
