"""Per-node session registry.

``SessionRegistry`` is the interface the coordinator reads through: client
identifier to session references, references to metadata records, and the
live connection actor per client. ``InMemorySessionRegistry`` is a
dictionary-backed implementation for single-process deployments and tests.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from gatehouse.channel import ConnectionRef, Kick
from gatehouse.result import NOT_FOUND, Error, Ok, Result

__all__ = ["InMemorySessionRegistry", "SessionRef", "SessionRegistry"]

logger = logging.getLogger("gatehouse.registry")


@dataclass(frozen=True)
class SessionRef:
    """Opaque handle to one registered session on this node."""

    gateway: str
    client_id: str
    serial: int


@runtime_checkable
class SessionRegistry(Protocol):
    def lookup_by_client_id(self, gateway: str, client_id: str) -> list[SessionRef]: ...

    def lookup_metadata(self, session_ref: SessionRef) -> list[dict[str, Any]]: ...

    def kick_session(self, gateway: str, client_id: str) -> Result[None]: ...

    def lookup_channel(self, gateway: str, client_id: str) -> ConnectionRef | None: ...


@dataclass
class _Entry:
    ref: SessionRef
    conn: ConnectionRef
    metadata: dict[str, Any] | None


class InMemorySessionRegistry:
    """Dictionary-backed registry for one node.

    A client identifier may hold several references at once, e.g. while a
    reconnecting client takes over its previous session.

    Examples
    --------
    >>> registry = InMemorySessionRegistry()
    >>> ref = registry.register("mqtt", "c1", conn, {"status": "connected"})
    >>> registry.lookup_by_client_id("mqtt", "c1") == [ref]
    True
    """

    def __init__(self) -> None:
        self._serial = itertools.count(1)
        self._by_client: dict[tuple[str, str], list[_Entry]] = {}

    def register(
        self,
        gateway: str,
        client_id: str,
        conn: ConnectionRef,
        metadata: dict[str, Any] | None = None,
    ) -> SessionRef:
        ref = SessionRef(gateway=gateway, client_id=client_id, serial=next(self._serial))
        self._by_client.setdefault((gateway, client_id), []).append(
            _Entry(
                ref=ref,
                conn=conn,
                metadata=None if metadata is None else dict(metadata),
            )
        )
        logger.debug("Registered session %s/%s (#%d)", gateway, client_id, ref.serial)
        return ref

    def update_metadata(self, session_ref: SessionRef, metadata: dict[str, Any]) -> None:
        entry = self._find(session_ref)
        if entry is None:
            raise KeyError(session_ref)
        entry.metadata = dict(metadata)

    def unregister(self, session_ref: SessionRef) -> None:
        key = (session_ref.gateway, session_ref.client_id)
        entries = [e for e in self._by_client.get(key, []) if e.ref != session_ref]
        if entries:
            self._by_client[key] = entries
        else:
            self._by_client.pop(key, None)

    def _find(self, session_ref: SessionRef) -> _Entry | None:
        key = (session_ref.gateway, session_ref.client_id)
        for entry in self._by_client.get(key, []):
            if entry.ref == session_ref:
                return entry
        return None

    def lookup_by_client_id(self, gateway: str, client_id: str) -> list[SessionRef]:
        return [e.ref for e in self._by_client.get((gateway, client_id), [])]

    def lookup_metadata(self, session_ref: SessionRef) -> list[dict[str, Any]]:
        entry = self._find(session_ref)
        if entry is None or entry.metadata is None:
            return []
        return [dict(entry.metadata)]

    def lookup_channel(self, gateway: str, client_id: str) -> ConnectionRef | None:
        entries = self._by_client.get((gateway, client_id))
        if not entries:
            return None
        return entries[-1].conn

    def kick_session(self, gateway: str, client_id: str) -> Result[None]:
        entries = self._by_client.pop((gateway, client_id), None)
        if not entries:
            return Error(NOT_FOUND)
        for entry in entries:
            entry.conn.tell(Kick())
        logger.info("Kicked %d session(s) for %s/%s", len(entries), gateway, client_id)
        return Ok()
