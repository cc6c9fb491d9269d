"""Synchronous client for the stats socket."""

from __future__ import annotations

import errno
import logging
import socket
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, Mapping, Optional, Union

from .protocol import DecodeError, StatsRequest, StatsResponse, decode_response, encode_request
from .server import DEFAULT_BASE_PATH, DEFAULT_SCHED_PATH, DEFAULT_STATS_PATH


logger = logging.getLogger(__name__)

DEFAULT_PATH = str(Path(DEFAULT_BASE_PATH) / DEFAULT_SCHED_PATH / DEFAULT_STATS_PATH)


class StatsClientError(RuntimeError):
    """Raised for transport failures and for responses with a non-zero errno."""

    def __init__(self, errno: int, message: str) -> None:
        super().__init__(message)
        self.errno = errno
        self.message = message


@dataclass
class StatsClientConfig:
    path: Union[str, Path] = DEFAULT_PATH
    timeout: Optional[float] = 5.0


@dataclass
class StatsClient:
    config: StatsClientConfig = field(default_factory=StatsClientConfig)

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _rfile: Optional[BinaryIO] = field(init=False, default=None)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock)

    def __enter__(self) -> "StatsClient":
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def connect(self) -> None:
        with self._lock:
            self._connect_locked()

    def _connect_locked(self) -> None:
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.config.timeout)
        try:
            sock.connect(str(self.config.path))
        except OSError as exc:
            sock.close()
            raise StatsClientError(exc.errno or errno.EIO, f"connect to {self.config.path} failed: {exc}") from exc
        self._sock = sock
        self._rfile = sock.makefile("rb")

    def close(self) -> None:
        with self._lock:
            self._disconnect_locked()

    def _disconnect_locked(self) -> None:
        if self._rfile is not None:
            self._rfile.close()
            self._rfile = None
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def request(self, req: str, args: Optional[Mapping[str, str]] = None) -> StatsResponse:
        """Send one request and return the raw response envelope."""
        payload = encode_request(StatsRequest.new(req, args))
        with self._lock:
            self._connect_locked()
            assert self._sock is not None and self._rfile is not None
            try:
                self._sock.sendall(payload)
                line = self._rfile.readline()
            except OSError as exc:
                self._disconnect_locked()
                raise StatsClientError(exc.errno or errno.EIO, f"stats request failed: {exc}") from exc
            if not line:
                self._disconnect_locked()
                raise StatsClientError(errno.ECONNRESET, "stats server closed the connection")
        try:
            return decode_response(line)
        except DecodeError as exc:
            raise StatsClientError(errno.EPROTO, str(exc)) from exc

    def _payload(self, response: StatsResponse) -> Any:
        if not response.ok:
            logger.debug("stats error response: errno=%d %s", response.errno, response.resp)
            raise StatsClientError(response.errno, str(response.resp))
        return response.resp

    def stats(self, target: Optional[str] = None, **args: str) -> Any:
        request_args: Dict[str, str] = dict(args)
        if target is not None:
            request_args["target"] = target
        return self._payload(self.request("stats", request_args))

    def stats_meta(self) -> Dict[str, Any]:
        return self._payload(self.request("stats_meta"))
