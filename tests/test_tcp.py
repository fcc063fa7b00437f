from __future__ import annotations

import asyncio
from typing import Any

import pytest

from gatehouse import (
    NOT_FOUND,
    Error,
    GatehouseConfig,
    GatewayNode,
    InMemorySessionRegistry,
    Ok,
    RpcConfig,
    RpcError,
    RpcServer,
    TcpRpcClient,
    select_fields,
)
from gatehouse.tcp import RpcEnvelope, encode_frame
from tests.utils import FakeConnection, hang

pytestmark = pytest.mark.timeout(10)


async def echo(operation: str, args: list[Any]) -> Any:
    match operation:
        case "slow":
            await asyncio.sleep(0.5)
            return "slow"
        case "missing":
            return Error(NOT_FOUND)
        case "ok":
            return Ok([("t/1", {"qos": 1})])
        case "boom":
            raise RuntimeError("handler failed")
        case "hang":
            return await hang(operation, args)
        case _:
            return [operation, *args]


@pytest.fixture
async def server():
    srv = RpcServer(echo, "127.0.0.1", 0)
    await srv.start()
    yield srv
    await srv.stop()


@pytest.fixture
async def client(server: RpcServer):
    cli = TcpRpcClient({"b": ("127.0.0.1", server.port)}, connect_timeout=1.0)
    yield cli
    await cli.close()


def test_envelope_drops_empty_fields() -> None:
    env = RpcEnvelope(type="reply", correlation_id="42", payload=[1, 2])
    assert env.to_dict() == {"type": "reply", "correlation_id": "42", "payload": [1, 2]}
    assert RpcEnvelope.from_dict(env.to_dict()) == env


def test_frame_is_length_prefixed() -> None:
    frame = encode_frame(RpcEnvelope(type="call", correlation_id="1", operation="kick"))
    assert int.from_bytes(frame[:4], "big") == len(frame) - 4


def test_unpackable_envelope_is_codec_failure() -> None:
    with pytest.raises(RpcError) as exc_info:
        encode_frame(RpcEnvelope(type="call", correlation_id="1", args=[object()]))
    assert exc_info.value.failure.kind == "codec"


async def test_call_round_trip(client: TcpRpcClient) -> None:
    assert await client.call("b", "kick", ["mqtt", "c1"], timeout=2.0) == ["kick", "mqtt", "c1"]


async def test_results_keep_their_shape(client: TcpRpcClient) -> None:
    assert await client.call("b", "missing", [], timeout=2.0) == Error(NOT_FOUND)
    assert await client.call("b", "ok", [], timeout=2.0) == Ok([["t/1", {"qos": 1}]])


async def test_handler_error_is_remote_failure(client: TcpRpcClient) -> None:
    with pytest.raises(RpcError) as exc_info:
        await client.call("b", "boom", [], timeout=2.0)
    assert exc_info.value.failure.kind == "remote"
    assert "handler failed" in exc_info.value.failure.detail


async def test_unknown_node_is_nodedown(client: TcpRpcClient) -> None:
    with pytest.raises(RpcError) as exc_info:
        await client.call("zz", "kick", [], timeout=2.0)
    assert exc_info.value.failure.kind == "nodedown"


async def test_refused_connection_is_nodedown() -> None:
    srv = RpcServer(echo, "127.0.0.1", 0)
    await srv.start()
    port = srv.port
    await srv.stop()

    cli = TcpRpcClient({"b": ("127.0.0.1", port)}, connect_timeout=1.0)
    try:
        with pytest.raises(RpcError) as exc_info:
            await cli.call("b", "kick", [], timeout=2.0)
    finally:
        await cli.close()
    assert exc_info.value.failure.kind == "nodedown"


async def test_timeout_only_affects_its_own_call(client: TcpRpcClient) -> None:
    slow = asyncio.create_task(client.call("b", "slow", [], timeout=0.1))
    fast = await client.call("b", "kick", ["x"], timeout=2.0)

    assert fast == ["kick", "x"]
    with pytest.raises(RpcError) as exc_info:
        await slow
    assert exc_info.value.failure.kind == "timeout"
    assert await client.call("b", "kick", ["y"], timeout=2.0) == ["kick", "y"]


async def test_lost_connection_fails_pending_calls(
    server: RpcServer, client: TcpRpcClient
) -> None:
    pending = asyncio.create_task(client.call("b", "hang", [], timeout=5.0))
    await asyncio.sleep(0.1)
    await server.stop()

    with pytest.raises(RpcError) as exc_info:
        await pending
    assert exc_info.value.failure.kind == "closed"


async def test_nodes_over_tcp() -> None:
    config_a = GatehouseConfig(node_id="a@127.0.0.1", call_timeout=2.0, rpc=RpcConfig(port=0))
    config_b = GatehouseConfig(node_id="b@127.0.0.1", call_timeout=2.0, rpc=RpcConfig(port=0))
    registry_b = InMemorySessionRegistry()
    conn = FakeConnection({"t/1": {"qos": 1}})
    registry_b.register("mqtt", "c1", conn, {"status": "connected", "peer": "10.1.1.1"})

    async with GatewayNode(config_a) as a, GatewayNode(config_b, registry=registry_b) as b:
        assert a.rpc_port is not None and b.rpc_port is not None
        a.add_peer(b.node_id, "127.0.0.1", b.rpc_port)
        b.add_peer(a.node_id, "127.0.0.1", a.rpc_port)

        coordinator = a.coordinator
        assert await coordinator.lookup_client("mqtt", "c1", select_fields("status")) == [
            {"status": "connected"}
        ]
        assert await coordinator.list_client_subscriptions(
            "mqtt", "c1", node=b.node_id
        ) == Ok([{"qos": 1, "topic": "t/1"}])
        assert await coordinator.kickout_client("mqtt", "c1") == Ok()
        assert conn.kicked
        assert await coordinator.lookup_client("mqtt", "c1") == []
        assert await coordinator.kickout_client("mqtt", "c1") == Error(NOT_FOUND)
