"""Node-local reads and kicks over the session registry. No network involved."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeAlias

from gatehouse.registry import SessionRegistry
from gatehouse.result import Result

__all__ = ["FormatFn", "LocalRegistryAccessor", "identity_format", "select_fields"]

FormatFn: TypeAlias = Callable[[dict[str, Any]], Any]


def identity_format(record: dict[str, Any]) -> dict[str, Any]:
    return record


def select_fields(*names: str) -> FormatFn:
    """Build a formatter keeping only *names* from each record.

    Examples
    --------
    >>> select_fields("status")({"status": "connected", "proto": "mqtt"})
    {'status': 'connected'}
    """

    def fmt(record: dict[str, Any]) -> dict[str, Any]:
        return {k: record[k] for k in names if k in record}

    return fmt


class LocalRegistryAccessor:
    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    def lookup(
        self, gateway: str, client_id: str, format_fn: FormatFn = identity_format
    ) -> list[Any]:
        """Formatted metadata of every session registered for *client_id*.

        Never fails: an unknown client yields ``[]``.
        """
        return [
            format_fn(record)
            for ref in self._registry.lookup_by_client_id(gateway, client_id)
            for record in self._registry.lookup_metadata(ref)
        ]

    def kick(self, gateway: str, client_id: str) -> Result[None]:
        return self._registry.kick_session(gateway, client_id)
