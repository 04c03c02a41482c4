"""Tests for the Recent-Pair Tracker."""

import threading

import pytest

from taste_machine.engine.recent_pairs import RecentPairTracker, pair_key
from taste_machine.rating.config import RecentPairsConfig


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestPairKey:
    def test_order_independent(self) -> None:
        assert pair_key("b", "a") == pair_key("a", "b") == ("a", "b")

    def test_single(self) -> None:
        assert pair_key("x") == ("x",)

    def test_rejects_three(self) -> None:
        with pytest.raises(ValueError):
            pair_key("a", "b", "c")


class TestCooldown:
    def test_recent_within_window(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=60), clock=clock)
        tracker.record_shown(pair_key("a", "b"))
        clock.now += 59
        assert tracker.was_shown_recently(pair_key("b", "a"))

    def test_expired_after_window(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=60), clock=clock)
        tracker.record_shown(pair_key("a", "b"))
        clock.now += 60
        assert not tracker.was_shown_recently(pair_key("a", "b"))
        # Expired entries are still stored until pruned.
        assert len(tracker) == 1
        assert tracker.prune() == 1
        assert len(tracker) == 0

    def test_try_reserve(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=60), clock=clock)
        key = pair_key("a", "b")
        assert tracker.try_reserve(key)
        assert not tracker.try_reserve(key)
        clock.now += 61
        assert tracker.try_reserve(key)


class TestCapacity:
    def test_oldest_evicted_first(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=3600, max_entries=3), clock=clock)
        for other in ("b", "c", "d", "e"):
            clock.now += 1
            tracker.record_shown(pair_key("a", other))
        assert len(tracker) == 3
        assert not tracker.was_shown_recently(pair_key("a", "b"))
        assert tracker.was_shown_recently(pair_key("a", "e"))
        assert tracker.stats().evicted == 1

    def test_expired_evicted_before_active(self) -> None:
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=10, max_entries=2))
        tracker.record_shown(pair_key("a", "b"), now=0.0)
        tracker.record_shown(pair_key("a", "c"), now=5.0)
        # a-b is outside the window by now and sits at the front.
        tracker.record_shown(pair_key("a", "d"), now=12.0)
        assert len(tracker) == 2
        assert tracker.was_shown_recently(pair_key("a", "c"), now=12.0)
        assert tracker.was_shown_recently(pair_key("a", "d"), now=12.0)
        assert tracker.stats(now=12.0).evicted == 1

    def test_reshown_key_moves_to_back(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=3600, max_entries=2), clock=clock)
        tracker.record_shown(pair_key("a", "b"))
        clock.now += 1
        tracker.record_shown(pair_key("a", "c"))
        clock.now += 1
        tracker.record_shown(pair_key("a", "b"))
        clock.now += 1
        tracker.record_shown(pair_key("a", "d"))
        assert tracker.was_shown_recently(pair_key("a", "b"))
        assert not tracker.was_shown_recently(pair_key("a", "c"))

    def test_eviction_at_capacity_removes_only_overflow(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=3600, max_entries=500), clock=clock)
        for i in range(500):
            tracker.record_shown(pair_key("a", f"n{i:04d}"))
        for i in range(500, 1500):
            clock.now += 1
            tracker.record_shown(pair_key("a", f"n{i:04d}"))
            assert len(tracker) == 500
        assert tracker.stats().evicted == 1000
        assert not tracker.was_shown_recently(pair_key("a", "n0999"))
        assert tracker.was_shown_recently(pair_key("a", "n1000"))

    def test_prune_stops_at_first_active(self) -> None:
        clock = FakeClock()
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=10), clock=clock)
        tracker.record_shown(pair_key("a", "b"))
        clock.now += 5
        tracker.record_shown(pair_key("a", "c"))
        clock.now += 6
        tracker.record_shown(pair_key("a", "d"))
        assert tracker.prune() == 1
        assert len(tracker) == 2

    def test_clear(self) -> None:
        tracker = RecentPairTracker()
        tracker.record_shown(pair_key("a", "b"))
        tracker.record_shown(pair_key("c"))
        assert tracker.clear() == 2
        assert len(tracker) == 0


class TestConcurrency:
    def test_only_one_thread_reserves_a_pair(self) -> None:
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=3600))
        key = pair_key("a", "b")
        wins: list[bool] = []
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            wins.append(tracker.try_reserve(key))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wins.count(True) == 1

    def test_no_lost_entries(self) -> None:
        tracker = RecentPairTracker(RecentPairsConfig(cooldown_seconds=3600, max_entries=100_000))

        def worker(prefix: str) -> None:
            for i in range(500):
                tracker.record_shown(pair_key(f"{prefix}{i}", "z"))

        threads = [threading.Thread(target=worker, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(tracker) == 2000
        assert tracker.stats().evicted == 0
