"""Result values shared by every layer of the coordinator.

Per-node outcomes are plain values rather than exceptions: ``Ok`` wraps a
successful return, ``Error`` carries an opaque reason. Transport failures are
``Error`` values whose reason is a ``TransportFailure``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeAlias, TypeVar

__all__ = [
    "NOT_FOUND",
    "TIMEOUT",
    "Error",
    "Ok",
    "Result",
    "TransportFailure",
    "from_wire",
    "to_wire",
]

NOT_FOUND = "not_found"
TIMEOUT = "timeout"

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome, optionally carrying a value.

    Examples
    --------
    >>> Ok()
    Ok(value=None)
    >>> Ok([{"topic": "t/1", "qos": 1}]).value
    [{'topic': 't/1', 'qos': 1}]
    """

    value: T | None = None


@dataclass(frozen=True)
class Error:
    """Failed outcome with an opaque reason.

    Examples
    --------
    >>> Error(NOT_FOUND)
    Error(reason='not_found')
    """

    reason: Any


@dataclass(frozen=True)
class TransportFailure:
    """Reason attached to an ``Error`` when a remote call did not complete.

    Parameters
    ----------
    kind : str
        One of ``"timeout"``, ``"nodedown"``, ``"codec"``, ``"remote"`` or
        ``"closed"``.
    detail : str
        Free-form diagnostic text.
    """

    kind: str
    detail: str = ""


Result: TypeAlias = Ok[T] | Error

_TAGS = frozenset({"__ok__", "__error__", "__transport__", "__dict__"})


def to_wire(value: Any) -> Any:
    """Convert a result (possibly nested in lists) into msgpack-friendly data.

    Plain dicts using one of the tag keys are escaped under ``__dict__`` so
    they come back as dicts. Tuples come back as lists.
    """
    match value:
        case Ok(inner):
            return {"__ok__": to_wire(inner)}
        case Error(TransportFailure(kind, detail)):
            return {"__error__": {"__transport__": [kind, detail]}}
        case Error(reason):
            return {"__error__": to_wire(reason)}
        case list() | tuple():
            return [to_wire(v) for v in value]
        case dict() if _TAGS.intersection(value):
            return {"__dict__": {k: to_wire(v) for k, v in value.items()}}
        case dict():
            return {k: to_wire(v) for k, v in value.items()}
        case _:
            return value


def from_wire(data: Any) -> Any:
    """Inverse of ``to_wire``."""
    match data:
        case {"__dict__": dict() as inner} if len(data) == 1:
            return {k: from_wire(v) for k, v in inner.items()}
        case {"__ok__": inner} if len(data) == 1:
            return Ok(from_wire(inner))
        case {"__error__": {"__transport__": [kind, detail]}} if len(data) == 1:
            return Error(TransportFailure(kind, detail))
        case {"__error__": reason} if len(data) == 1:
            return Error(from_wire(reason))
        case list():
            return [from_wire(v) for v in data]
        case dict():
            return {k: from_wire(v) for k, v in data.items()}
        case _:
            return data
