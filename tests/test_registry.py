"""Tests for wiotp_gateway.registry — SubscriptionRegistry."""

from __future__ import annotations

import threading

import pytest

from wiotp_gateway.registry import SubscriptionRegistry


class TestSubscriptionRegistry:
    def test_empty(self):
        registry = SubscriptionRegistry()
        assert len(registry) == 0
        assert registry.entries() == []
        assert registry.get("a/b") is None

    def test_register_and_lookup(self):
        registry = SubscriptionRegistry()
        registry.register("a/b", 1)
        assert "a/b" in registry
        assert registry.get("a/b") == 1
        assert list(registry) == [("a/b", 1)]

    def test_overwrite_keeps_single_entry_and_position(self):
        registry = SubscriptionRegistry()
        registry.register("a", 0)
        registry.register("b", 0)
        registry.register("a", 2)
        assert registry.entries() == [("a", 2), ("b", 0)]
        assert len(registry) == 2

    @pytest.mark.parametrize("qos", [-1, 3, "1", None])
    def test_invalid_qos_raises(self, qos):
        registry = SubscriptionRegistry()
        with pytest.raises(ValueError):
            registry.register("a/b", qos)
        assert len(registry) == 0

    def test_entries_is_snapshot(self):
        registry = SubscriptionRegistry()
        registry.register("a", 0)
        snapshot = registry.entries()
        registry.register("b", 0)
        assert snapshot == [("a", 0)]

    def test_iteration_tolerates_concurrent_register(self):
        registry = SubscriptionRegistry()
        registry.register("a", 0)
        for _topic, _qos in registry:
            registry.register("b", 1)
        assert len(registry) == 2

    def test_concurrent_registration(self):
        registry = SubscriptionRegistry()

        def worker(n: int) -> None:
            for i in range(200):
                registry.register(f"t/{i % 50}", n % 3)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(registry) == 50
