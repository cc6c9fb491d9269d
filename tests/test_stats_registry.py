import errno
import threading
import time

import pytest

from scx_stats.protocol import StatsError
from scx_stats.registry import StatProducer, StatsRegistry


def test_lookup_returns_handle_that_invokes_producer():
    registry = StatsRegistry()
    registry.register_producer("cpu", lambda args: {"util": 42, "args": dict(args)})
    producer = registry.lookup_producer("cpu")
    assert isinstance(producer, StatProducer)
    assert producer({"target": "cpu"}) == {"util": 42, "args": {"target": "cpu"}}


def test_lookup_unknown_name_is_invalid_argument():
    registry = StatsRegistry()
    with pytest.raises(StatsError) as info:
        registry.lookup_producer("missing")
    assert info.value.errno == errno.EINVAL
    assert "missing" in str(info.value)


def test_later_registration_replaces_earlier():
    registry = StatsRegistry()
    registry.register_producer("top", lambda args: 1)
    registry.register_producer("top", lambda args: 2)
    registry.register_metadata("top", {"v": 1})
    registry.register_metadata("top", {"v": 2})
    assert len(registry) == 1
    assert registry.lookup_producer("top")({}) == 2
    assert registry.snapshot_metadata() == {"top": {"v": 2}}


def test_register_rejects_non_callable():
    with pytest.raises(TypeError):
        StatsRegistry().register_producer("top", 42)


def test_take_moves_entries_and_freezes_result():
    registry = StatsRegistry()
    registry.register_producer("a", lambda args: "a")
    registry.register_metadata("a", {"name": "a"})
    taken = registry.take()
    assert taken.frozen
    assert taken.names() == ["a"]
    assert taken.snapshot_metadata() == {"a": {"name": "a"}}
    assert len(registry) == 0
    assert registry.snapshot_metadata() == {}
    with pytest.raises(RuntimeError):
        taken.register_producer("b", lambda args: "b")
    with pytest.raises(RuntimeError):
        taken.register_metadata("b", {})


def test_snapshot_is_a_copy():
    registry = StatsRegistry()
    registry.register_metadata("a", 1)
    snapshot = registry.snapshot_metadata()
    snapshot["b"] = 2
    assert registry.snapshot_metadata() == {"a": 1}


def test_producer_handle_serializes_its_own_callers():
    active = []
    overlaps = []
    guard = threading.Lock()

    def slow(args):
        with guard:
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
        time.sleep(0.02)
        with guard:
            active.pop()
        return None

    producer = StatProducer("slow", slow)
    threads = [threading.Thread(target=producer, args=({},)) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=2.0)
    assert overlaps == []
