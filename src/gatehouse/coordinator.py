"""Cluster-wide client lookup and control.

``ClusterCoordinator`` scatters an operation over the running nodes and
gathers the per-node outcomes:

- lookup concatenates every node's records, in node order;
- kick succeeds if any node succeeded, otherwise it reports the last node's
  error;
- subscription commands go to a single node, the one owning the client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from gatehouse.dispatcher import Operation, RemoteDispatcher
from gatehouse.local import FormatFn, identity_format
from gatehouse.membership import MembershipProvider, NodeId
from gatehouse.result import NOT_FOUND, Error, Ok, Result

__all__ = ["ClusterCoordinator"]

logger = logging.getLogger("gatehouse.coordinator")


class ClusterCoordinator:
    """Scatter/gather entry point for the management API.

    Parameters
    ----------
    membership : MembershipProvider
        Queried afresh on every call.
    dispatcher : RemoteDispatcher
        Routes each per-node call locally or over RPC.

    Examples
    --------
    >>> coordinator = ClusterCoordinator(membership, dispatcher)
    >>> await coordinator.lookup_client("mqtt", "c1")
    [{'status': 'connected'}]
    >>> await coordinator.kickout_client("mqtt", "c1")
    Ok(value=None)
    """

    def __init__(
        self, membership: MembershipProvider, dispatcher: RemoteDispatcher
    ) -> None:
        self._membership = membership
        self._dispatcher = dispatcher

    async def _scatter(
        self, operation: Operation, args: list[Any]
    ) -> list[tuple[NodeId, Any]]:
        nodes = self._membership.running_nodes()
        results = await asyncio.gather(
            *(self._dispatcher.dispatch(node, operation, args) for node in nodes)
        )
        return list(zip(nodes, results))

    async def lookup_client(
        self, gateway: str, client_id: str, format_fn: FormatFn = identity_format
    ) -> list[Any]:
        """Formatted session metadata for *client_id* from every node.

        Nodes that fail contribute nothing; duplicates are kept.
        """
        records: list[Any] = []
        for node, result in await self._scatter(
            Operation.lookup, [gateway, client_id, format_fn]
        ):
            if isinstance(result, Error):
                logger.warning(
                    "Dropping lookup of %s/%s from %s: %s",
                    gateway, client_id, node, result.reason,
                )
                continue
            records.extend(result)
        return records

    async def kickout_client(self, gateway: str, client_id: str) -> Result[None]:
        """Kick *client_id* on every node.

        Returns ``Ok()`` if any node kicked a session, else the last node's
        error.
        """
        results = [r for _, r in await self._scatter(Operation.kick, [gateway, client_id])]
        if any(isinstance(r, Ok) for r in results):
            return Ok()
        if not results:
            return Error(NOT_FOUND)
        return results[-1]

    def _target(self, node: NodeId | None) -> NodeId:
        return self._dispatcher.local_node if node is None else node

    async def list_client_subscriptions(
        self, gateway: str, client_id: str, *, node: NodeId | None = None
    ) -> Result[list[dict[str, Any]]]:
        return await self._dispatcher.dispatch(
            self._target(node), Operation.subscriptions, [gateway, client_id]
        )

    async def client_subscribe(
        self,
        gateway: str,
        client_id: str,
        topic: str,
        options: dict[str, Any],
        *,
        node: NodeId | None = None,
    ) -> Result[Any]:
        return await self._dispatcher.dispatch(
            self._target(node), Operation.subscribe, [gateway, client_id, topic, options]
        )

    async def client_unsubscribe(
        self,
        gateway: str,
        client_id: str,
        topic: str,
        *,
        node: NodeId | None = None,
    ) -> Result[Any]:
        return await self._dispatcher.dispatch(
            self._target(node), Operation.unsubscribe, [gateway, client_id, topic]
        )
