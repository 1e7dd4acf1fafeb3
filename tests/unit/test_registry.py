"""
Unit tests for the IdentityRegistry
"""

import threading

from common.bridge_core.ingest.registry import IdentityRegistry


def test_new_registry_is_empty():
    registry = IdentityRegistry()
    assert len(registry) == 0
    assert not registry.contains("s1")


def test_record_is_idempotent():
    registry = IdentityRegistry()
    registry.record("s1")
    registry.record("s1")

    assert registry.contains("s1")
    assert len(registry) == 1


def test_check_and_record_reports_first_observation_only():
    registry = IdentityRegistry()

    assert registry.check_and_record("s1") is True
    assert registry.check_and_record("s1") is False
    assert "s1" in registry


def test_snapshot_is_detached():
    registry = IdentityRegistry()
    registry.record("a")
    snapshot = registry.snapshot()
    registry.record("b")

    assert snapshot == frozenset({"a"})
    assert set(registry) == {"a", "b"}


def test_concurrent_check_and_record_has_single_winner():
    registry = IdentityRegistry()
    barrier = threading.Barrier(16)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        is_new = registry.check_and_record("shared")
        with lock:
            results.append(is_new)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert len(registry) == 1
