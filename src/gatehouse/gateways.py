"""Summaries of the gateways known to this node and their listeners."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, TypeAlias, runtime_checkable

__all__ = [
    "GatewayCatalog",
    "GatewayInfo",
    "GatewayStatus",
    "InMemoryGatewayCatalog",
    "ListenerProbe",
    "ListenerSpec",
    "gateways",
    "listener_name",
]

GatewayStatus: TypeAlias = Literal["running", "stopped", "unloaded"]
ListenerProbe: TypeAlias = Callable[[str, str], bool]


@dataclass(frozen=True)
class ListenerSpec:
    type: str
    name: str
    bind: str


@dataclass(frozen=True)
class GatewayInfo:
    """A loaded gateway. Timestamps are unix seconds."""

    name: str
    status: GatewayStatus
    created_at: float | None = None
    started_at: float | None = None
    stopped_at: float | None = None
    listeners: tuple[ListenerSpec, ...] = ()


@runtime_checkable
class GatewayCatalog(Protocol):
    def registered(self) -> list[str]: ...

    def lookup(self, name: str) -> GatewayInfo | None: ...


class InMemoryGatewayCatalog:
    """Registered gateway names, some of which may be loaded."""

    def __init__(self) -> None:
        self._registered: list[str] = []
        self._loaded: dict[str, GatewayInfo] = {}

    def register(self, name: str) -> None:
        if name not in self._registered:
            self._registered.append(name)

    def load(self, info: GatewayInfo) -> None:
        self.register(info.name)
        self._loaded[info.name] = info

    def unload(self, name: str) -> None:
        self._loaded.pop(name, None)

    def registered(self) -> list[str]:
        return list(self._registered)

    def lookup(self, name: str) -> GatewayInfo | None:
        return self._loaded.get(name)


def listener_name(gateway: str, spec: ListenerSpec) -> str:
    return f"{gateway}:{spec.type}:{spec.name}"


def _rfc3339(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=UTC).isoformat(timespec="seconds")


def _never_listening(name: str, bind: str) -> bool:
    return False


def gateways(
    catalog: GatewayCatalog,
    status: GatewayStatus | Literal["all"] = "all",
    probe: ListenerProbe = _never_listening,
) -> list[dict[str, Any]]:
    """One summary per registered gateway, optionally filtered by *status*.

    Examples
    --------
    >>> catalog = InMemoryGatewayCatalog()
    >>> catalog.register("coap")
    >>> gateways(catalog)
    [{'name': 'coap', 'status': 'unloaded'}]
    """
    summaries: list[dict[str, Any]] = []
    for name in catalog.registered():
        info = catalog.lookup(name)
        if info is None:
            summaries.append({"name": name, "status": "unloaded"})
            continue
        summary: dict[str, Any] = {"name": info.name, "status": info.status}
        for key in ("created_at", "started_at", "stopped_at"):
            value = _rfc3339(getattr(info, key))
            if value is not None:
                summary[key] = value
        summary["listeners"] = [
            {
                listener_name(name, spec): (
                    "activing" if probe(listener_name(name, spec), spec.bind) else "inactived"
                )
            }
            for spec in info.listeners
        ]
        summaries.append(summary)
    if status == "all":
        return summaries
    return [s for s in summaries if s["status"] == status]
