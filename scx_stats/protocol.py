"""Wire envelope for the stats socket.

Every message is one compact JSON document terminated by ``\\n``.  Clients
send ``{"req": ..., "args": {...}}`` and the server answers with
``{"errno": ..., "args": {"resp": ...}}``.  ``errno`` is the only success
indicator; on failure ``resp`` carries a description instead of data.
"""

from __future__ import annotations

import errno as _errno
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Tuple, Union


class StatsError(Exception):
    """Per-request failure tagged with an OS-style error code."""

    def __init__(self, message: str, errno: int = _errno.EINVAL) -> None:
        super().__init__(message)
        self.message = message
        self.errno = errno

    def __str__(self) -> str:
        if not self.errno:
            return self.message
        return f"{self.message} ({os.strerror(self.errno)})"


class DecodeError(StatsError):
    """Raised when a request line is not a valid request document."""


@dataclass
class StatsRequest:
    req: str
    args: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        req: str,
        args: Union[Mapping[str, str], Iterable[Tuple[str, str]], None] = None,
    ) -> "StatsRequest":
        return cls(req=req, args=dict(args or {}))

    def to_json(self) -> Dict[str, Any]:
        return {"req": self.req, "args": dict(self.args)}


@dataclass
class StatsResponse:
    errno: int
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, errno: int, resp: Any) -> "StatsResponse":
        return cls(errno=errno, args={"resp": resp})

    @property
    def resp(self) -> Any:
        return self.args.get("resp")

    @property
    def ok(self) -> bool:
        return self.errno == 0

    def to_json(self) -> Dict[str, Any]:
        return {"errno": self.errno, "args": dict(self.args)}


def _dump_line(payload: Dict[str, Any]) -> bytes:
    # Compact separators and ASCII escaping keep the document on one line;
    # NaN and Infinity are rejected since they are not JSON.
    return json.dumps(payload, separators=(",", ":"), allow_nan=False).encode("utf-8") + b"\n"


def encode_request(request: StatsRequest) -> bytes:
    return _dump_line(request.to_json())


def encode_response(response: StatsResponse) -> bytes:
    """Serialize a response; raises TypeError/ValueError for non-JSON payloads."""
    return _dump_line(response.to_json())


def _load_line(line: Union[bytes, str]) -> Any:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"request is not valid UTF-8: {exc}") from exc
    try:
        return json.loads(line)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"malformed JSON: {exc}") from exc


def decode_request(line: Union[bytes, str]) -> StatsRequest:
    data = _load_line(line)
    if not isinstance(data, dict):
        raise DecodeError(f"request must be a JSON object, got {type(data).__name__}")
    req = data.get("req")
    if not isinstance(req, str):
        raise DecodeError("request is missing string field 'req'")
    raw_args = data.get("args")
    if raw_args is None:
        raw_args = {}
    if not isinstance(raw_args, dict):
        raise DecodeError("request field 'args' must be an object")
    for key, value in raw_args.items():
        if not isinstance(value, str):
            raise DecodeError(f"request argument {key!r} must be a string")
    return StatsRequest(req=req, args=dict(raw_args))


def decode_response(line: Union[bytes, str]) -> StatsResponse:
    data = _load_line(line)
    if not isinstance(data, dict) or not isinstance(data.get("errno"), int):
        raise DecodeError("response is missing integer field 'errno'")
    args = data.get("args") or {}
    if not isinstance(args, dict):
        raise DecodeError("response field 'args' must be an object")
    return StatsResponse(errno=data["errno"], args=args)


def errno_of(exc: BaseException) -> int:
    """Pick the errno reported for ``exc``; only StatsError carries an explicit code."""
    if isinstance(exc, StatsError) and exc.errno:
        return exc.errno
    return _errno.EINVAL


def describe(exc: BaseException) -> str:
    if isinstance(exc, StatsError):
        return str(exc)
    text = str(exc)
    name = type(exc).__name__
    return f"{name}: {text}" if text else name


def error_response(exc: BaseException) -> StatsResponse:
    return StatsResponse.build(errno_of(exc), describe(exc))
