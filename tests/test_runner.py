import asyncio
import time

import pytest

from core.events import TaskEventType
from core.runner import AgentTaskRunner
from core.types import TaskStatus

from conftest import ScriptedAgent


def make_runner(stats, registry=None, timeout=1.0, attempts=3, delay=0.0, backoff=2.0):
    return AgentTaskRunner(
        stats=stats,
        tool_registry=registry,
        timeout_seconds=timeout,
        max_attempts=attempts,
        retry_delay_seconds=delay,
        backoff=backoff,
    )


class TestAgentTaskRunner:
    @pytest.mark.asyncio
    async def test_success(self, stats):
        agent = ScriptedAgent("research", output={"overview": "Acme makes anvils"})
        outcome = await make_runner(stats).execute_with_retry(agent, {"company_name": "Acme"})

        assert outcome.success
        assert outcome.task.status == TaskStatus.SUCCEEDED
        assert outcome.task.attempt == 1
        assert outcome.result_entry()["overview"] == "Acme makes anvils"
        assert stats.snapshot("research").tasks_completed == 1

    @pytest.mark.asyncio
    async def test_always_failing_agent_stops_after_max_attempts(self, stats):
        agent = ScriptedAgent("news", behaviour="fail")
        outcome = await make_runner(stats, attempts=3).execute_with_retry(agent, {"company_name": "Acme"})

        assert agent.calls == 3
        assert outcome.task.status == TaskStatus.FAILED_TERMINAL
        assert outcome.error.kind == "agent"
        entry = outcome.result_entry()
        assert entry["agentName"] == "news"
        assert entry["attempts"] == 3
        assert "news exploded" in entry["error"]

        snap = stats.snapshot("news")
        assert snap.tasks_failed == 1
        assert snap.tasks_completed == 0

    @pytest.mark.asyncio
    async def test_timeouts_are_retried_then_reported(self, stats):
        agent = ScriptedAgent("market", behaviour="hang")
        start = time.monotonic()
        outcome = await make_runner(stats, timeout=0.05, attempts=3).execute_with_retry(
            agent, {"company_name": "Acme"}
        )
        elapsed = time.monotonic() - start

        assert agent.calls == 3
        assert elapsed >= 0.15
        assert outcome.error.kind == "timeout"
        assert outcome.result_entry()["errorKind"] == "timeout"

    @pytest.mark.asyncio
    async def test_validation_errors_are_not_retried(self, stats):
        agent = ScriptedAgent("contact", behaviour="invalid")
        outcome = await make_runner(stats, attempts=3).execute_with_retry(agent, {})

        assert agent.calls == 1
        assert outcome.error.kind == "validation"
        assert not outcome.error.retryable
        assert outcome.task.status == TaskStatus.FAILED_TERMINAL

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, stats):
        agent = ScriptedAgent("product", fail_times=1)
        outcome = await make_runner(stats, attempts=3).execute_with_retry(agent, {"company_name": "Acme"})

        assert outcome.success
        assert outcome.task.attempt == 2
        assert outcome.task.error is None
        assert stats.snapshot("product").total == 1

    @pytest.mark.asyncio
    async def test_listener_sees_every_status_transition(self, stats):
        events = []

        async def listener(event):
            events.append(event)

        agent = ScriptedAgent("risk", fail_times=1)
        await make_runner(stats).execute_with_retry(
            agent, {"company_name": "Acme"}, phase="deep-analysis", listener=listener
        )

        statuses = [e.data["status"] for e in events if e.type == TaskEventType.TASK_STATUS]
        assert statuses == ["running", "failed-retrying", "running", "succeeded"]
        assert all(e.phase == "deep-analysis" for e in events)

    @pytest.mark.asyncio
    async def test_tool_calls_are_reported(self, stats, registry):
        events = []

        async def listener(event):
            events.append(event)

        agent = ScriptedAgent("research", tool="web_search")
        outcome = await make_runner(stats, registry).execute_with_retry(
            agent, {"company_name": "Acme"}, listener=listener
        )

        assert outcome.success
        tool_events = [e.data for e in events if e.type == TaskEventType.TOOL_CALL]
        assert [e["status"] for e in tool_events] == ["pending", "success"]
        assert tool_events[0]["id"] == tool_events[1]["id"]
        assert tool_events[0]["name"] == "web_search"

    @pytest.mark.asyncio
    async def test_slow_sibling_does_not_delay_others(self, stats):
        runner = make_runner(stats, timeout=0.5, attempts=1)
        slow = ScriptedAgent("competitive", behaviour="hang")
        fast = ScriptedAgent("financial")

        slow_outcome, fast_outcome = await asyncio.gather(
            runner.execute_with_retry(slow, {"company_name": "Acme"}),
            runner.execute_with_retry(fast, {"company_name": "Acme"}),
        )

        assert fast_outcome.success
        assert fast_outcome.duration_ms < 250
        assert slow_outcome.error.kind == "timeout"

    def test_exponential_backoff(self, stats):
        runner = make_runner(stats, delay=0.5, backoff=2.0)
        assert [runner.retry_delay_for(k) for k in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_rejects_zero_attempts(self, stats):
        with pytest.raises(ValueError):
            make_runner(stats, attempts=0)
