"""Shared fixtures for gatehouse tests."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from gatehouse import (
    GatehouseConfig,
    GatewayNode,
    InMemorySessionRegistry,
    LocalRpcNetwork,
    StaticMembership,
)
from tests.utils import NODES


@dataclass
class LocalCluster:
    network: LocalRpcNetwork
    membership: StaticMembership
    nodes: dict[str, GatewayNode] = field(default_factory=dict)

    def registry(self, node: str) -> InMemorySessionRegistry:
        registry = self.nodes[node].registry
        assert isinstance(registry, InMemorySessionRegistry)
        return registry


@pytest.fixture
async def cluster():
    """Three in-process nodes sharing one membership list."""
    network = LocalRpcNetwork()
    membership = StaticMembership(NODES)
    local = LocalCluster(network=network, membership=membership)
    for node_id in NODES:
        local.nodes[node_id] = GatewayNode.join_local(
            network,
            GatehouseConfig(node_id=node_id, call_timeout=0.5),
            membership=membership,
        )
    for node in local.nodes.values():
        await node.start()
    yield local
    for node in local.nodes.values():
        await node.stop()
