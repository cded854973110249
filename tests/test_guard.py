"""
tests/test_guard.py — Transition Side-Effect Guard Tests
=========================================================
"""

from __future__ import annotations

import threading

import pytest

from ascent.engine.guard import TransitionGuard


class TestShouldFire:
    def test_first_call_fires(self, clock):
        guard = TransitionGuard(60, clock=clock)
        assert guard.should_fire("p1", 3)

    def test_repeat_within_window_suppressed(self, clock):
        guard = TransitionGuard(60, clock=clock)
        guard.should_fire("p1", 3)
        clock.advance(59)
        assert not guard.should_fire("p1", 3)

    def test_fires_again_after_window(self, clock):
        guard = TransitionGuard(60, clock=clock)
        guard.should_fire("p1", 3)
        clock.advance(61)
        assert guard.should_fire("p1", 3)

    def test_keys_are_independent(self, clock):
        guard = TransitionGuard(60, clock=clock)
        assert guard.should_fire("p1", 3)
        assert guard.should_fire("p1", 4)
        assert guard.should_fire("p2", 3)
        assert guard.should_fire("p1", "complete")

    def test_forget_allows_refire(self, clock):
        guard = TransitionGuard(60, clock=clock)
        guard.should_fire("p1", 3)
        guard.forget("p1", 3)
        assert guard.should_fire("p1", 3)


class TestBounds:
    def test_expired_entries_are_pruned(self, clock):
        guard = TransitionGuard(60, clock=clock)
        for i in range(10):
            guard.should_fire(f"p{i}", 2)
        clock.advance(61)
        guard.should_fire("fresh", 2)
        assert len(guard) == 1

    def test_oldest_evicted_at_capacity(self, clock):
        guard = TransitionGuard(60, max_entries=3, clock=clock)
        for i in range(4):
            clock.advance(1)
            guard.should_fire(f"p{i}", 2)
        assert len(guard) == 3
        # p0 was evicted, so it fires again even inside the window
        assert guard.should_fire("p0", 2)

    def test_window_must_be_positive(self):
        with pytest.raises(ValueError):
            TransitionGuard(0)


class TestConcurrency:
    def test_exactly_one_thread_fires(self):
        guard = TransitionGuard(60)
        barrier = threading.Barrier(8)
        results: list[bool] = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            fired = guard.should_fire("p1", 5)
            with lock:
                results.append(fired)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
