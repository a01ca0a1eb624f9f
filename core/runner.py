"""
Agent Task Runner - one agent's unit of work with timeout, bounded retry
and failure isolation.

A runner never raises for agent failures. The outcome of every task is a
TaskOutcome carrying either the agent's output or a classified TaskError,
and exactly one stats record is written per task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .base_agent import Agent, AgentContext, ToolSession
from .errors import AgentTaskError, TaskError, classify_error
from .events import TaskEvent, TaskEventType, TaskListener
from .stats import StatsAggregator
from .tools import ToolRegistry
from .types import AgentTask, TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class TaskOutcome:
    """Terminal result of one agent task."""
    task: AgentTask
    output: Optional[Dict[str, Any]] = None
    error: Optional[TaskError] = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.task.status == TaskStatus.SUCCEEDED

    def result_entry(self) -> Any:
        """What gets folded into the phase results for this agent."""
        if self.success:
            return self.output
        return {
            "error": self.error.message if self.error else "Unknown error",
            "errorKind": self.error.kind if self.error else "agent",
            "agentName": self.task.agent_name,
            "attempts": self.task.attempt,
        }


class AgentTaskRunner:
    """Wraps agent execution with per-attempt timeout and bounded retry."""

    def __init__(
        self,
        stats: StatsAggregator,
        tool_registry: Optional[ToolRegistry] = None,
        timeout_seconds: float = 60.0,
        max_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
        backoff: float = 2.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.stats = stats
        self.tool_registry = tool_registry
        self.timeout = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay_seconds
        self.backoff = backoff

    @classmethod
    def from_options(cls, stats: StatsAggregator, tool_registry: Optional[ToolRegistry], options: Any) -> "AgentTaskRunner":
        return cls(
            stats=stats,
            tool_registry=tool_registry,
            timeout_seconds=options.agent_timeout_seconds,
            max_attempts=options.retry_attempts,
            retry_delay_seconds=options.retry_delay_seconds,
            backoff=options.retry_backoff,
        )

    def retry_delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based)."""
        return self.retry_delay * (self.backoff ** (attempt - 1))

    async def _set_status(self, task: AgentTask, status: TaskStatus, listener: Optional[TaskListener]) -> None:
        task.status = status
        if listener is not None:
            await listener(TaskEvent(
                type=TaskEventType.TASK_STATUS,
                agent_name=task.agent_name,
                task_id=task.id,
                phase=task.phase,
                data=task.to_dict(),
            ))

    async def execute_with_retry(
        self,
        agent: Agent,
        input_data: Dict[str, Any],
        phase: Optional[str] = None,
        workflow_id: Optional[str] = None,
        listener: Optional[TaskListener] = None,
        task: Optional[AgentTask] = None,
    ) -> TaskOutcome:
        """
        Run `agent` until it succeeds, fails with a validation error, or
        exhausts its attempts.

        Each attempt is bounded by the runner timeout. A timed-out attempt
        is cancelled and counted as a failure; sibling tasks are unaffected
        because each task runs in its own coroutine.
        """
        task = task or AgentTask(
            agent_name=agent.name,
            phase=phase,
            workflow_id=workflow_id,
            input=input_data,
        )
        task.started_at = datetime.now()
        start = time.monotonic()
        last_error: Optional[TaskError] = None

        for attempt in range(1, self.max_attempts + 1):
            task.attempt = attempt
            await self._set_status(task, TaskStatus.RUNNING, listener)
            context = AgentContext(
                task_id=task.id,
                tools=ToolSession(self.tool_registry, agent.name, task.id, phase, listener),
                phase=phase,
                workflow_id=workflow_id,
                attempt=attempt,
            )
            try:
                output = await asyncio.wait_for(agent.execute(input_data, context), timeout=self.timeout)
            except asyncio.TimeoutError:
                last_error = classify_error(AgentTaskError(
                    f"Agent {agent.name} execution timeout after {self.timeout}s",
                    agent_name=agent.name,
                    timed_out=True,
                ))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = classify_error(e)
            else:
                return await self._finish(task, start, listener, output=output)

            task.error = last_error.message
            logger.warning(
                "Agent %s attempt %d/%d failed: %s",
                agent.name, attempt, self.max_attempts, last_error.message,
            )
            if not last_error.retryable or attempt == self.max_attempts:
                break

            await self._set_status(task, TaskStatus.FAILED_RETRYING, listener)
            await asyncio.sleep(self.retry_delay_for(attempt))

        return await self._finish(task, start, listener, error=last_error)

    async def _finish(
        self,
        task: AgentTask,
        start: float,
        listener: Optional[TaskListener],
        output: Optional[Dict[str, Any]] = None,
        error: Optional[TaskError] = None,
    ) -> TaskOutcome:
        duration_ms = (time.monotonic() - start) * 1000
        task.completed_at = datetime.now()
        if error is None:
            task.error = None
            status = TaskStatus.SUCCEEDED
        else:
            status = TaskStatus.FAILED_TERMINAL
            logger.error(
                "Agent %s failed after %d attempt(s): %s",
                task.agent_name, task.attempt, error.message,
            )
        self.stats.record(task.agent_name, duration_ms, error is None, error.message if error else None)
        await self._set_status(task, status, listener)
        return TaskOutcome(task=task, output=output, error=error, duration_ms=duration_ms)
