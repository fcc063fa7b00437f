"""TOML-based configuration for a gatehouse node.

Provides ``load_config`` / ``discover_config`` for loading ``gatehouse.toml``
into frozen dataclasses.

Example file::

    [node]
    id = "gw1@10.0.0.1"
    call_timeout = 15.0

    [rpc]
    host = "0.0.0.0"
    port = 7650

    [cluster.peers]
    "gw2@10.0.0.2" = "10.0.0.2:7650"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gatehouse.membership import NodeId

__all__ = [
    "ClusterConfig",
    "GatehouseConfig",
    "RpcConfig",
    "discover_config",
    "load_config",
    "parse_address",
]

CONFIG_FILENAME = "gatehouse.toml"


@dataclass(frozen=True)
class RpcConfig:
    """Where this node serves remote calls.

    Parameters
    ----------
    host : str
        Bind address.
    port : int
        Bind port (``0`` for OS-assigned).
    connect_timeout : float
        Seconds allowed to open a connection to a peer.

    Examples
    --------
    >>> RpcConfig(port=7650)
    RpcConfig(host='127.0.0.1', port=7650, connect_timeout=2.0)
    """

    host: str = "127.0.0.1"
    port: int = 0
    connect_timeout: float = 2.0


@dataclass(frozen=True)
class ClusterConfig:
    """Peer nodes and the addresses of their RPC servers.

    Parameters
    ----------
    peers : dict[NodeId, tuple[str, int]]
        Peer node id to ``(host, port)``.
    """

    peers: dict[NodeId, tuple[str, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class GatehouseConfig:
    """Top-level configuration for one node.

    Parameters
    ----------
    node_id : NodeId
        Identifier of this node within the cluster.
    call_timeout : float
        Seconds allowed for each remote call and connection actor call.
    rpc : RpcConfig
        RPC server settings.
    cluster : ClusterConfig
        Peer addresses.

    Examples
    --------
    >>> GatehouseConfig(node_id="gw1@local").call_timeout
    15.0
    """

    node_id: NodeId = "gatehouse@127.0.0.1"
    call_timeout: float = 15.0
    rpc: RpcConfig = field(default_factory=RpcConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)


def parse_address(raw: str) -> tuple[str, int]:
    """Split a ``host:port`` peer address.

    Raises
    ------
    ValueError
        If *raw* has no port or the port is not a number.
    """
    host, sep, port = raw.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Peer address must be host:port, got {raw!r}")
    return (host, int(port))


def discover_config(start: Path | None = None) -> Path | None:
    """Return the nearest ``gatehouse.toml`` in *start* or one of its parents."""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _node_section(raw: dict[str, Any]) -> tuple[NodeId, float]:
    node_id = raw.get("id", GatehouseConfig.node_id)
    call_timeout = float(raw.get("call_timeout", GatehouseConfig.call_timeout))
    if call_timeout <= 0:
        raise ValueError(f"node.call_timeout must be positive, got {call_timeout}")
    return node_id, call_timeout


def _peers_section(raw: dict[str, str], node_id: NodeId) -> ClusterConfig:
    peers = {peer: parse_address(addr) for peer, addr in raw.items() if peer != node_id}
    return ClusterConfig(peers=peers)


def load_config(path: Path | None = None) -> GatehouseConfig:
    """Build the node configuration from ``gatehouse.toml``.

    Without *path* the nearest ``gatehouse.toml`` above the working
    directory is used, and a node with no file runs on defaults. A peer
    entry naming this node itself is ignored.

    Raises
    ------
    FileNotFoundError
        If an explicit *path* does not exist.
    ValueError
        If a peer address or the call timeout is malformed.
    """
    if path is None:
        path = discover_config()
        if path is None:
            return GatehouseConfig()
    elif not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    node_id, call_timeout = _node_section(raw.get("node", {}))
    return GatehouseConfig(
        node_id=node_id,
        call_timeout=call_timeout,
        rpc=RpcConfig(**raw.get("rpc", {})),
        cluster=_peers_section(raw.get("cluster", {}).get("peers", {}), node_id),
    )
