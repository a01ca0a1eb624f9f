import pytest

from core.stats import StatsAggregator


class TestStatsAggregator:
    def test_counts_and_success_rate_stay_consistent(self, stats):
        outcomes = [True, False, True, True, False, True, True]
        for i, ok in enumerate(outcomes):
            stats.record("research", 10.0 * (i + 1), ok, None if ok else "boom")

        snap = stats.snapshot("research")
        assert snap.tasks_completed + snap.tasks_failed == len(outcomes)
        assert abs(snap.success_rate - 5 / 7) < 1e-9
        assert 0.0 <= snap.success_rate <= 1.0

    def test_running_average_matches_mean(self, stats):
        durations = [12.0, 40.0, 8.0, 100.0]
        for d in durations:
            stats.record("news", d, True)

        snap = stats.snapshot("news")
        assert snap.average_execution_time == pytest.approx(sum(durations) / len(durations))
        assert snap.min_execution_time == 8.0
        assert snap.max_execution_time == 100.0
        assert snap.last_execution_time is not None

    def test_errors_are_deduplicated_and_capped(self):
        stats = StatsAggregator(max_errors=10)
        for _ in range(3):
            stats.record("risk", 1.0, False, "same failure")
        for i in range(20):
            stats.record("risk", 1.0, False, f"failure {i}")

        errors = stats.snapshot("risk").errors
        assert errors.count("same failure") == 1
        assert len(errors) == 10

    def test_idle_agent_snapshot_is_empty(self, stats):
        snap = stats.snapshot("quality")
        assert snap.total == 0
        assert snap.success_rate == 1.0
        assert snap.min_execution_time is None

    def test_snapshot_is_a_copy(self, stats):
        stats.record("market", 5.0, False, "oops")
        snap = stats.snapshot("market")
        snap.errors.append("tampered")
        snap.tasks_failed = 99

        fresh = stats.snapshot("market")
        assert fresh.errors == ["oops"]
        assert fresh.tasks_failed == 1

    def test_snapshot_all_and_to_dict(self, stats):
        stats.record("a", 1.0, True)
        stats.record("b", 2.0, False, "x")

        names = sorted(s.name for s in stats.snapshot())
        assert names == ["a", "b"]
        data = stats.snapshot("b").to_dict()
        assert data["tasksFailed"] == 1
        assert data["successRate"] == 0.0
        assert data["errors"] == ["x"]
