"""Cluster membership as seen by the coordinator.

The coordinator asks ``running_nodes()`` at the start of every operation and
never keeps the answer, since members come and go independently of any call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, TypeAlias, runtime_checkable

__all__ = ["MembershipProvider", "NodeId", "StaticMembership"]

logger = logging.getLogger("gatehouse.membership")

NodeId: TypeAlias = str


@runtime_checkable
class MembershipProvider(Protocol):
    """Source of the currently live cluster nodes.

    The returned order is the node-enumeration order used for aggregation.
    """

    def running_nodes(self) -> list[NodeId]: ...


class StaticMembership:
    """Membership list maintained by hand, in insertion order.

    Examples
    --------
    >>> members = StaticMembership(["a@host", "b@host"])
    >>> members.join("c@host")
    >>> members.leave("a@host")
    >>> members.running_nodes()
    ['b@host', 'c@host']
    """

    def __init__(self, nodes: Iterable[NodeId] = ()) -> None:
        self._nodes: dict[NodeId, None] = dict.fromkeys(nodes)

    def join(self, node: NodeId) -> None:
        if node not in self._nodes:
            self._nodes[node] = None
            logger.info("Node joined: %s", node)

    def leave(self, node: NodeId) -> None:
        if self._nodes.pop(node, False) is None:
            logger.info("Node left: %s", node)

    def running_nodes(self) -> list[NodeId]:
        return list(self._nodes)
