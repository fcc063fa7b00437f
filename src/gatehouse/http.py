"""Error envelope for the management HTTP API."""

from __future__ import annotations

import json

__all__ = ["codestr", "return_http_error"]

_CODES: dict[int, str] = {
    404: "RESOURCE_NOT_FOUND",
    401: "NOT_SUPPORTED_NOW",
    500: "UNKNOWN_ERROR",
}


def codestr(code: int) -> str:
    """Symbolic name of an HTTP status code.

    Raises
    ------
    ValueError
        For any code without a symbolic name.
    """
    try:
        return _CODES[code]
    except KeyError:
        raise ValueError(f"No symbolic error code for HTTP {code}") from None


def return_http_error(code: int, message: str | bytes) -> tuple[int, bytes]:
    """Status code and JSON body ``{"code": ..., "reason": ...}``.

    Examples
    --------
    >>> return_http_error(404, "client not found")
    (404, b'{"code": "RESOURCE_NOT_FOUND", "reason": "client not found"}')
    """
    reason = message.decode("utf-8") if isinstance(message, bytes) else str(message)
    body = json.dumps({"code": codestr(code), "reason": reason}).encode("utf-8")
    return code, body
