"""Unix-socket stats server.

An embedding process builds a :class:`StatsServer`, registers producers and
metadata, then calls :meth:`StatsServer.launch`.  The listener runs on a
daemon thread and every accepted connection gets its own handler thread that
answers one JSON line per request line until the peer hangs up.
"""

from __future__ import annotations

import errno
import logging
import socketserver
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .protocol import (
    StatsError,
    StatsRequest,
    StatsResponse,
    decode_request,
    encode_response,
    error_response,
)
from .registry import StatFetch, StatsRegistry


logger = logging.getLogger(__name__)

DEFAULT_BASE_PATH = "/var/run/scx"
DEFAULT_SCHED_PATH = "root"
DEFAULT_STATS_PATH = "stats"
DEFAULT_TARGET = "top"

_RESTART_DELAY = 0.1

PathLike = Union[str, Path]


class StatsServerError(RuntimeError):
    """Raised when the server cannot be launched."""


class _StatsHandler(socketserver.StreamRequestHandler):
    server: "_StatsListener"

    def handle(self) -> None:
        try:
            self._serve()
        except OSError as exc:
            logger.warning("stat communication errored (%s)", exc)

    def _serve(self) -> None:
        while True:
            line = self.rfile.readline()
            if not line:
                return
            self.wfile.write(self.server.respond(line))


class _StatsListener(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True
    block_on_close = False

    def __init__(self, path: str, registry: Optional[StatsRegistry] = None) -> None:
        self.registry = registry if registry is not None else StatsRegistry()
        self._closing = threading.Event()
        # Guards _serving so stop() only waits on a serve_forever() that runs.
        self._state_lock = threading.Lock()
        self._serving = False
        super().__init__(path, _StatsHandler)

    #
    # Request handling
    #
    def respond(self, line: bytes) -> bytes:
        try:
            return encode_response(self.dispatch(decode_request(line)))
        except Exception as exc:
            logger.debug("stat request failed: %s", exc)
            return encode_response(error_response(exc))

    def dispatch(self, request: StatsRequest) -> StatsResponse:
        if request.req == "stats":
            target = request.args.get("target", DEFAULT_TARGET)
            producer = self.registry.lookup_producer(target)
            return StatsResponse.build(0, producer(request.args))
        if request.req == "stats_meta":
            return StatsResponse.build(0, self.registry.snapshot_metadata())
        raise StatsError(f"unknown command {request.req!r}", errno.EINVAL)

    #
    # Accept loop
    #
    def get_request(self):
        try:
            return super().get_request()
        except OSError as exc:
            if not self._closing.is_set():
                logger.warning("failed to accept stat connection (%s)", exc)
            raise

    def handle_error(self, request, client_address) -> None:
        logger.exception("unexpected error while serving stat connection")

    def listen(self) -> None:
        # serve_forever() only returns after shutdown(); anything else is
        # unexpected and the loop is restarted so the socket keeps answering.
        while True:
            with self._state_lock:
                if self._closing.is_set():
                    break
                self._serving = True
            error: Optional[Exception] = None
            try:
                self.serve_forever()
            except Exception as exc:
                error = exc
            with self._state_lock:
                self._serving = False
            if self._closing.is_set():
                break
            if error is not None:
                logger.error("stat accept loop failed, restarting", exc_info=error)
                self._closing.wait(_RESTART_DELAY)
            else:
                logger.warning("stat accept loop exited, restarting")

    def stop(self) -> None:
        with self._state_lock:
            if self._closing.is_set():
                return
            self._closing.set()
            serving = self._serving
        if serving:
            self.shutdown()
        self.server_close()


@dataclass
class StatsServerConfig:
    base_path: PathLike = DEFAULT_BASE_PATH
    sched_path: PathLike = DEFAULT_SCHED_PATH
    stats_path: PathLike = DEFAULT_STATS_PATH
    path: Optional[PathLike] = None

    def resolve_path(self) -> Path:
        if self.path is not None:
            return Path(self.path)
        return Path(self.base_path) / self.sched_path / self.stats_path


class StatsServer:
    """Builder for the stats endpoint; :meth:`launch` starts it exactly once."""

    def __init__(self, config: Optional[StatsServerConfig] = None) -> None:
        self.config = config or StatsServerConfig()
        self._registry = StatsRegistry()
        self._listener: Optional[_StatsListener] = None
        self._thread: Optional[threading.Thread] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        """Socket path, available once launched."""
        return self._path

    @property
    def launched(self) -> bool:
        return self._listener is not None

    #
    # Configuration
    #
    def add_stats(self, name: str, fetch: StatFetch) -> "StatsServer":
        self._registry.register_producer(name, fetch)
        return self

    def add_meta(self, name: str, descriptor: Any) -> "StatsServer":
        self._registry.register_metadata(name, descriptor)
        return self

    def add_stats_meta(self, meta: Any) -> "StatsServer":
        """Register a descriptor exposing ``name`` and ``to_json()``, or a mapping with ``"name"``."""
        if isinstance(meta, Mapping):
            if "name" not in meta:
                raise ValueError("stats metadata mapping needs a 'name' key")
            return self.add_meta(str(meta["name"]), dict(meta))
        return self.add_meta(meta.name, meta.to_json())

    def set_base_path(self, path: PathLike) -> "StatsServer":
        self.config.base_path = path
        return self

    def set_sched_path(self, path: PathLike) -> "StatsServer":
        self.config.sched_path = path
        return self

    def set_stats_path(self, path: PathLike) -> "StatsServer":
        self.config.stats_path = path
        return self

    def set_path(self, path: PathLike) -> "StatsServer":
        self.config.path = path
        return self

    #
    # Lifecycle
    #
    def launch(self) -> "StatsServer":
        if self._listener is not None:
            raise StatsServerError("stats server already launched")
        path = self.config.resolve_path()

        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StatsServerError(f"creating {parent}: {exc}") from exc

        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StatsServerError(f"deleting {path}: {exc}") from exc

        try:
            listener = _StatsListener(str(path))
        except OSError as exc:
            raise StatsServerError(f"creating UNIX socket {path}: {exc}") from exc
        listener.registry = self._registry.take()
        self._registry.freeze()

        self._listener = listener
        self._path = path
        self._thread = threading.Thread(target=listener.listen, name="scx-stats-listener", daemon=True)
        self._thread.start()
        logger.info(
            "stats server listening on %s (%s)",
            path,
            ", ".join(listener.registry.names()) or "no stats",
        )
        return self

    def close(self) -> None:
        """Stop accepting connections and remove the socket file."""
        listener = self._listener
        if listener is None:
            return
        listener.stop()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self._path is not None:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
