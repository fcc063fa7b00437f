from gatehouse.channel import (
    DEFAULT_CALL_TIMEOUT,
    ChannelCommandClient,
    ConnectionMsg,
    ConnectionRef,
    GetSubscriptions,
    Kick,
    SubscribeTopic,
    UnsubscribeTopic,
    ask,
)
from gatehouse.config import (
    ClusterConfig,
    GatehouseConfig,
    RpcConfig,
    discover_config,
    load_config,
)
from gatehouse.coordinator import ClusterCoordinator
from gatehouse.dispatcher import Operation, RemoteDispatcher
from gatehouse.gateways import (
    GatewayCatalog,
    GatewayInfo,
    InMemoryGatewayCatalog,
    ListenerSpec,
    gateways,
)
from gatehouse.http import codestr, return_http_error
from gatehouse.local import LocalRegistryAccessor, identity_format, select_fields
from gatehouse.membership import MembershipProvider, NodeId, StaticMembership
from gatehouse.node import GatewayNode
from gatehouse.registry import InMemorySessionRegistry, SessionRef, SessionRegistry
from gatehouse.result import NOT_FOUND, TIMEOUT, Error, Ok, Result, TransportFailure
from gatehouse.rpc import LocalRpcNetwork, RpcClient, RpcError
from gatehouse.tcp import RpcServer, TcpRpcClient

__all__ = [
    "ChannelCommandClient",
    "ClusterConfig",
    "ClusterCoordinator",
    "ConnectionMsg",
    "ConnectionRef",
    "DEFAULT_CALL_TIMEOUT",
    "Error",
    "GatehouseConfig",
    "GatewayCatalog",
    "GatewayInfo",
    "GatewayNode",
    "GetSubscriptions",
    "InMemoryGatewayCatalog",
    "InMemorySessionRegistry",
    "Kick",
    "ListenerSpec",
    "LocalRegistryAccessor",
    "LocalRpcNetwork",
    "MembershipProvider",
    "NOT_FOUND",
    "NodeId",
    "Ok",
    "Operation",
    "RemoteDispatcher",
    "Result",
    "RpcClient",
    "RpcConfig",
    "RpcError",
    "RpcServer",
    "SessionRef",
    "SessionRegistry",
    "StaticMembership",
    "SubscribeTopic",
    "TIMEOUT",
    "TcpRpcClient",
    "TransportFailure",
    "UnsubscribeTopic",
    "ask",
    "codestr",
    "discover_config",
    "gateways",
    "identity_format",
    "load_config",
    "return_http_error",
    "select_fields",
]
