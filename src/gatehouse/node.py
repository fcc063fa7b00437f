"""Wires the coordinator stack together for one node.

Use as an async context manager::

    async with GatewayNode(load_config()) as node:
        await node.coordinator.lookup_client("mqtt", "c1")
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from gatehouse.channel import ChannelCommandClient
from gatehouse.config import GatehouseConfig
from gatehouse.coordinator import ClusterCoordinator
from gatehouse.dispatcher import RemoteDispatcher
from gatehouse.gateways import (
    GatewayCatalog,
    GatewayStatus,
    InMemoryGatewayCatalog,
    ListenerProbe,
    gateways,
)
from gatehouse.local import LocalRegistryAccessor
from gatehouse.membership import MembershipProvider, StaticMembership
from gatehouse.registry import InMemorySessionRegistry, SessionRegistry
from gatehouse.rpc import LocalRpcNetwork, RpcClient
from gatehouse.tcp import RpcServer, TcpRpcClient

__all__ = ["GatewayNode"]


class GatewayNode:
    """One cluster member: registry, dispatcher and coordinator.

    Without an injected *rpc*, peers are reached with ``TcpRpcClient`` and
    inbound calls are served by an ``RpcServer`` bound to ``config.rpc``.

    Parameters
    ----------
    config : GatehouseConfig
        Node settings.
    registry : SessionRegistry | None
        Defaults to an empty ``InMemorySessionRegistry``.
    membership : MembershipProvider | None
        Defaults to this node followed by the configured peers.
    rpc : RpcClient | None
        Transport for remote calls.
    catalog : GatewayCatalog | None
        Gateways known to this node.
    """

    def __init__(
        self,
        config: GatehouseConfig,
        *,
        registry: SessionRegistry | None = None,
        membership: MembershipProvider | None = None,
        rpc: RpcClient | None = None,
        catalog: GatewayCatalog | None = None,
    ) -> None:
        self._config = config
        self._registry = registry if registry is not None else InMemorySessionRegistry()
        self._membership = (
            membership
            if membership is not None
            else StaticMembership([config.node_id, *config.cluster.peers])
        )
        self._catalog = catalog if catalog is not None else InMemoryGatewayCatalog()
        self._server: RpcServer | None = None
        self._network: LocalRpcNetwork | None = None
        self._tcp: TcpRpcClient | None = None
        if rpc is None:
            self._tcp = TcpRpcClient(
                config.cluster.peers, connect_timeout=config.rpc.connect_timeout
            )
            rpc = self._tcp

        self._dispatcher = RemoteDispatcher(
            config.node_id,
            LocalRegistryAccessor(self._registry),
            ChannelCommandClient(self._registry, timeout=config.call_timeout),
            rpc,
            timeout=config.call_timeout,
        )
        self._coordinator = ClusterCoordinator(self._membership, self._dispatcher)
        if self._tcp is not None:
            self._server = RpcServer(
                self._dispatcher.handle, config.rpc.host, config.rpc.port
            )
        self._logger = logging.getLogger(f"gatehouse.node.{config.node_id}")

    @classmethod
    def join_local(
        cls,
        network: LocalRpcNetwork,
        config: GatehouseConfig,
        **kwargs: Any,
    ) -> GatewayNode:
        """Build a node whose peers live in the same process on *network*."""
        node = cls(config, rpc=network.client(config.node_id), **kwargs)
        node._network = network
        return node

    @property
    def node_id(self) -> str:
        return self._config.node_id

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> RemoteDispatcher:
        return self._dispatcher

    @property
    def coordinator(self) -> ClusterCoordinator:
        return self._coordinator

    @property
    def rpc_port(self) -> int | None:
        """Port the RPC server listens on, if this node serves over TCP."""
        return self._server.port if self._server is not None else None

    def add_peer(self, node: str, host: str, port: int) -> None:
        """Make *node* reachable over TCP and, with static membership, a member."""
        if self._tcp is None:
            raise ValueError("add_peer requires the TCP transport")
        self._tcp.set_address(node, host, port)
        if isinstance(self._membership, StaticMembership):
            self._membership.join(node)

    def gateways(
        self,
        status: GatewayStatus | Literal["all"] = "all",
        probe: ListenerProbe | None = None,
    ) -> list[dict[str, Any]]:
        if probe is None:
            return gateways(self._catalog, status)
        return gateways(self._catalog, status, probe)

    async def start(self) -> None:
        if self._network is not None:
            self._network.register(self.node_id, self._dispatcher.handle)
        if self._server is not None:
            await self._server.start()
        self._logger.info("Node started")

    async def stop(self) -> None:
        if self._network is not None:
            self._network.unregister(self.node_id)
        if self._server is not None:
            await self._server.stop()
        if self._tcp is not None:
            await self._tcp.close()
        self._logger.info("Node stopped")

    async def __aenter__(self) -> GatewayNode:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
