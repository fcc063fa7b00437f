"""msgpack-over-TCP implementation of the remote call transport.

Wire format: ``[msg_len:4][msgpack(envelope)]``. A node keeps one outbound
connection per peer; calls are multiplexed over it by correlation id, so a
slow call never holds up the others sharing the connection.
"""

from __future__ import annotations

import asyncio
import logging
import struct
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, TypeAlias

import msgpack

from gatehouse.membership import NodeId
from gatehouse.result import TransportFailure, from_wire, to_wire
from gatehouse.rpc import RpcError, RpcHandler

__all__ = ["RpcEnvelope", "RpcServer", "TcpRpcClient", "encode_frame", "read_envelope"]

logger = logging.getLogger("gatehouse.tcp")

Address: TypeAlias = tuple[str, int]


@dataclass(frozen=True)
class RpcEnvelope:
    """One message on the wire.

    Parameters
    ----------
    type : str
        ``"call"``, ``"reply"`` or ``"error"``.
    correlation_id : str
        Pairs a reply or error with its call.
    operation : str | None
        Operation name (calls only).
    args : list | None
        Operation arguments (calls only).
    payload : Any
        Result in wire form (replies only).
    error : list[str] | None
        ``[kind, detail]`` (errors only).

    Examples
    --------
    >>> env = RpcEnvelope(type="call", correlation_id="1", operation="kick",
    ...                   args=["mqtt", "c1"])
    >>> RpcEnvelope.from_dict(env.to_dict()) == env
    True
    """

    type: str
    correlation_id: str
    operation: str | None = None
    args: list[Any] | None = None
    payload: Any = None
    error: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RpcEnvelope:
        return cls(
            type=data.get("type", ""),
            correlation_id=data.get("correlation_id", ""),
            operation=data.get("operation"),
            args=data.get("args"),
            payload=data.get("payload"),
            error=data.get("error"),
        )


def encode_frame(envelope: RpcEnvelope) -> bytes:
    """Length-prefixed msgpack frame.

    Raises
    ------
    RpcError
        With kind ``"codec"`` if the envelope holds values msgpack cannot pack.
    """
    try:
        body: bytes = msgpack.packb(envelope.to_dict(), use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise RpcError(TransportFailure("codec", str(exc))) from exc
    return struct.pack("!I", len(body)) + body


async def read_envelope(reader: asyncio.StreamReader) -> RpcEnvelope:
    """Read one frame.

    Raises
    ------
    asyncio.IncompleteReadError
        When the peer closes the connection mid-frame or between frames.
    RpcError
        With kind ``"codec"`` if the frame is not a valid envelope.
    """
    (length,) = struct.unpack("!I", await reader.readexactly(4))
    body = await reader.readexactly(length)
    try:
        data = msgpack.unpackb(body, raw=False)
    except (ValueError, msgpack.exceptions.UnpackException) as exc:
        raise RpcError(TransportFailure("codec", str(exc))) from exc
    if not isinstance(data, dict):
        raise RpcError(TransportFailure("codec", f"unexpected frame: {type(data).__name__}"))
    return RpcEnvelope.from_dict(data)


class RpcServer:
    """Accepts calls from peers and answers them with *handler*.

    Parameters
    ----------
    handler : RpcHandler
        Usually ``RemoteDispatcher.handle``.
    host : str
        Bind address.
    port : int
        Bind port (``0`` for an OS-assigned port).
    """

    def __init__(self, handler: RpcHandler, host: str = "127.0.0.1", port: int = 0) -> None:
        self._handler = handler
        self._host = host
        self._port = port
        self._server: asyncio.Server | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._writers: set[asyncio.StreamWriter] = set()

    @property
    def port(self) -> int:
        """Actual listening port (resolved after ``start``)."""
        if self._server is not None and self._server.sockets:
            addr: Address = self._server.sockets[0].getsockname()[:2]
            return addr[1]
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_connection, self._host, self._port)
        logger.info("Listening for calls on %s:%d", self._host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for writer in list(self._writers):
            writer.close()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _on_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        write_lock = asyncio.Lock()
        self._writers.add(writer)
        try:
            while True:
                try:
                    envelope = await read_envelope(reader)
                except RpcError as exc:
                    logger.warning("Dropping undecodable frame: %s", exc)
                    continue
                if envelope.type != "call":
                    logger.warning("Unexpected %s frame from peer", envelope.type)
                    continue
                self._spawn(self._serve(envelope, writer, write_lock))
        except (asyncio.IncompleteReadError, ConnectionError, OSError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()

    async def _serve(
        self,
        envelope: RpcEnvelope,
        writer: asyncio.StreamWriter,
        write_lock: asyncio.Lock,
    ) -> None:
        cid = envelope.correlation_id
        try:
            result = await self._handler(
                envelope.operation or "", from_wire(envelope.args or [])
            )
            frame = encode_frame(
                RpcEnvelope(type="reply", correlation_id=cid, payload=to_wire(result))
            )
        except RpcError as exc:
            frame = encode_frame(
                RpcEnvelope(
                    type="error",
                    correlation_id=cid,
                    error=[exc.failure.kind, exc.failure.detail],
                )
            )
        except Exception as exc:
            logger.warning("Call %s failed: %r", envelope.operation, exc)
            frame = encode_frame(
                RpcEnvelope(type="error", correlation_id=cid, error=["remote", repr(exc)])
            )
        async with write_lock:
            try:
                writer.write(frame)
                await writer.drain()
            except (ConnectionError, OSError):
                logger.debug("Peer went away before reply %s", cid)


@dataclass
class _Peer:
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    read_task: asyncio.Task[None] | None = None
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pending: dict[str, asyncio.Future[Any]] = field(default_factory=dict)


class TcpRpcClient:
    """Calls peers over TCP.

    Parameters
    ----------
    addresses : Mapping[NodeId, tuple[str, int]]
        Where each peer's ``RpcServer`` listens.
    connect_timeout : float
        Seconds allowed to open a connection.

    Examples
    --------
    >>> client = TcpRpcClient({"b@10.0.0.2": ("10.0.0.2", 7650)})
    >>> # await client.call("b@10.0.0.2", "kick", ["mqtt", "c1"], timeout=15.0)
    >>> # await client.close()
    """

    def __init__(
        self,
        addresses: Mapping[NodeId, Address] | None = None,
        *,
        connect_timeout: float = 2.0,
    ) -> None:
        self._addresses: dict[NodeId, Address] = dict(addresses or {})
        self._connect_timeout = connect_timeout
        self._peers: dict[NodeId, _Peer] = {}
        self._connect_locks: dict[NodeId, asyncio.Lock] = {}

    def set_address(self, node: NodeId, host: str, port: int) -> None:
        self._addresses[node] = (host, port)

    async def call(
        self,
        node: NodeId,
        operation: str,
        args: Sequence[Any],
        *,
        timeout: float,
    ) -> Any:
        if node not in self._addresses:
            raise RpcError(TransportFailure("nodedown", f"no address for {node}"))
        cid = uuid.uuid4().hex
        frame = encode_frame(
            RpcEnvelope(
                type="call", correlation_id=cid, operation=operation, args=to_wire(list(args))
            )
        )
        try:
            return await asyncio.wait_for(self._roundtrip(node, cid, frame), timeout=timeout)
        except TimeoutError:
            raise RpcError(
                TransportFailure("timeout", f"{operation} on {node} after {timeout}s")
            ) from None
        finally:
            peer = self._peers.get(node)
            if peer is not None:
                peer.pending.pop(cid, None)

    async def _roundtrip(self, node: NodeId, cid: str, frame: bytes) -> Any:
        peer = await self._connect(node)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        peer.pending[cid] = future
        try:
            async with peer.write_lock:
                peer.writer.write(frame)
                await peer.writer.drain()
        except (ConnectionError, OSError) as exc:
            self._drop(node, peer)
            raise RpcError(TransportFailure("closed", str(exc))) from exc
        return await future

    async def _connect(self, node: NodeId) -> _Peer:
        lock = self._connect_locks.setdefault(node, asyncio.Lock())
        async with lock:
            peer = self._peers.get(node)
            if peer is not None and not peer.writer.is_closing():
                return peer
            host, port = self._addresses[node]
            try:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(host, port), timeout=self._connect_timeout
                )
            except (TimeoutError, ConnectionError, OSError) as exc:
                raise RpcError(
                    TransportFailure("nodedown", f"{node} at {host}:{port}: {exc!r}")
                ) from exc
            peer = _Peer(reader=reader, writer=writer)
            peer.read_task = asyncio.get_running_loop().create_task(
                self._read_loop(node, peer)
            )
            self._peers[node] = peer
            logger.debug("Connected to %s at %s:%d", node, host, port)
            return peer

    async def _read_loop(self, node: NodeId, peer: _Peer) -> None:
        try:
            while True:
                try:
                    envelope = await read_envelope(peer.reader)
                except RpcError as exc:
                    logger.warning("Undecodable frame from %s: %s", node, exc)
                    continue
                future = peer.pending.pop(envelope.correlation_id, None)
                if future is None or future.done():
                    continue
                match envelope.type:
                    case "reply":
                        future.set_result(from_wire(envelope.payload))
                    case "error":
                        kind, detail = envelope.error or ["remote", ""]
                        future.set_exception(RpcError(TransportFailure(kind, detail)))
                    case other:
                        future.set_exception(
                            RpcError(TransportFailure("codec", f"unexpected frame {other}"))
                        )
        except (asyncio.IncompleteReadError, ConnectionError, OSError) as exc:
            logger.info("Connection to %s lost: %r", node, exc)
        finally:
            self._drop(node, peer)

    def _drop(self, node: NodeId, peer: _Peer) -> None:
        if self._peers.get(node) is peer:
            del self._peers[node]
        peer.writer.close()
        for future in peer.pending.values():
            if not future.done():
                future.set_exception(RpcError(TransportFailure("closed", node)))
        peer.pending.clear()

    async def close(self) -> None:
        tasks = [p.read_task for p in self._peers.values() if p.read_task is not None]
        for node, peer in list(self._peers.items()):
            if peer.read_task is not None:
                peer.read_task.cancel()
            self._drop(node, peer)
        await asyncio.gather(*tasks, return_exceptions=True)
