"""Name -> producer and name -> metadata tables shared by connection threads."""

from __future__ import annotations

import errno
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from .protocol import StatsError

StatFetch = Callable[[Mapping[str, str]], Any]


class StatProducer:
    """Handle around a stat callable.

    The handle carries its own lock so concurrent requests for the same stat
    never run ``fetch`` at the same time, while different stats proceed in
    parallel.  Connection threads keep the handle after the registry lock is
    released.
    """

    def __init__(self, name: str, fetch: StatFetch) -> None:
        if not callable(fetch):
            raise TypeError(f"stat producer {name!r} is not callable")
        self.name = name
        self._fetch = fetch
        self._lock = threading.Lock()

    def __call__(self, args: Mapping[str, str]) -> Any:
        with self._lock:
            return self._fetch(args)

    def __repr__(self) -> str:
        return f"StatProducer({self.name!r})"


class StatsRegistry:
    def __init__(
        self,
        producers: Optional[Dict[str, StatProducer]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._producers: Dict[str, StatProducer] = dict(producers or {})
        self._metadata: Dict[str, Any] = dict(metadata or {})
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("stats registry is frozen after launch")

    def register_producer(self, name: str, fetch: StatFetch) -> None:
        producer = StatProducer(name, fetch)
        with self._lock:
            self._ensure_mutable()
            self._producers[name] = producer

    def register_metadata(self, name: str, descriptor: Any) -> None:
        with self._lock:
            self._ensure_mutable()
            self._metadata[name] = descriptor

    def lookup_producer(self, name: str) -> StatProducer:
        with self._lock:
            producer = self._producers.get(name)
        if producer is None:
            raise StatsError(f"unknown stat target {name!r}", errno.EINVAL)
        return producer

    def snapshot_metadata(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._metadata)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._producers)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def take(self) -> "StatsRegistry":
        """Move all entries into a new frozen registry, leaving this one empty."""
        with self._lock:
            self._ensure_mutable()
            producers, self._producers = self._producers, {}
            metadata, self._metadata = self._metadata, {}
        taken = StatsRegistry(producers, metadata)
        taken.freeze()
        return taken

    def __len__(self) -> int:
        with self._lock:
            return len(self._producers)
