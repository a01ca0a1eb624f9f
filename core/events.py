"""
Streaming event model shared by the workflow scheduler and the reasoning loop.

Both drivers write typed events into an EventChannel; the transport layer
consumes the channel and frames every event as an independent SSE message.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from .errors import WorkflowAbortError


HEARTBEAT_FRAME = ": heartbeat\n\n"


class EventType(Enum):
    REASONING = "reasoning"
    TOOL_CALL = "tool-call"
    CONTENT = "content"
    SOURCES = "sources"
    WORKFLOW_UPDATE = "workflow-update"
    AGENT_UPDATE = "agent-update"
    STEP = "step"
    LOG = "log"
    FINAL_ANSWER = "finalAnswer"
    DONE = "done"


class WorkflowUpdateType(Enum):
    WORKFLOW_START = "workflow-start"
    PHASE_START = "phase-start"
    PHASE_COMPLETE = "phase-complete"
    WORKFLOW_ERROR = "workflow-error"
    WORKFLOW_COMPLETE = "workflow-complete"


TERMINAL_UPDATES = (WorkflowUpdateType.WORKFLOW_COMPLETE, WorkflowUpdateType.WORKFLOW_ERROR)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


@dataclass
class WorkflowUpdate:
    """Event emitted by the workflow scheduler. Read-only once emitted."""
    type: WorkflowUpdateType
    workflow_id: str
    phase: Optional[str] = None
    agents: Optional[List[str]] = None
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def workflow_start(cls, workflow_id: str, company_name: str) -> "WorkflowUpdate":
        return cls(
            type=WorkflowUpdateType.WORKFLOW_START,
            workflow_id=workflow_id,
            message=f"Starting comprehensive research workflow for {company_name}",
        )

    @classmethod
    def phase_start(cls, workflow_id: str, phase: str, agents: List[str]) -> "WorkflowUpdate":
        return cls(
            type=WorkflowUpdateType.PHASE_START,
            workflow_id=workflow_id,
            phase=phase,
            agents=list(agents),
        )

    @classmethod
    def phase_complete(cls, workflow_id: str, phase: str, results: Dict[str, Any]) -> "WorkflowUpdate":
        return cls(
            type=WorkflowUpdateType.PHASE_COMPLETE,
            workflow_id=workflow_id,
            phase=phase,
            results=results,
        )

    @classmethod
    def workflow_error(cls, workflow_id: str, error: str, phase: Optional[str] = None) -> "WorkflowUpdate":
        return cls(
            type=WorkflowUpdateType.WORKFLOW_ERROR,
            workflow_id=workflow_id,
            phase=phase,
            error=error,
        )

    @classmethod
    def workflow_complete(cls, workflow_id: str, summary: Dict[str, Any]) -> "WorkflowUpdate":
        return cls(
            type=WorkflowUpdateType.WORKFLOW_COMPLETE,
            workflow_id=workflow_id,
            summary=summary,
        )

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_UPDATES

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "workflowId": self.workflow_id,
            "timestamp": self.timestamp.isoformat(),
        }
        optional = {
            "phase": self.phase,
            "agents": self.agents,
            "results": self.results,
            "error": self.error,
            "summary": self.summary,
            "message": self.message,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


@dataclass
class StreamEvent:
    """The `{type, data}` envelope delivered to stream consumers."""
    type: EventType
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {"type": self.type.value, "data": data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=_json_default)

    def to_sse(self) -> str:
        return f"data: {self.to_json()}\n\n"


class ChannelClosed(Exception):
    """Raised when sending into a channel that no longer accepts events."""


_CLOSE = object()


class EventChannel:
    """
    Bounded single-producer/single-consumer event channel.

    The producer awaits `send()` (back-pressure when the queue is full) and
    calls `close()` when finished. The consumer iterates with `async for` and
    calls `cancel()` when it stops listening, after which `send()` raises
    ChannelClosed. With a `terminal` predicate the channel closes itself
    right after the first terminal event.
    """

    def __init__(self, maxsize: int = 256, terminal: Optional[Callable[[Any], bool]] = None):
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=maxsize)
        self._terminal = terminal
        self._closed = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._closed or self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def send(self, event: Any) -> None:
        if self._cancelled:
            raise ChannelClosed("consumer has stopped reading")
        if self._closed:
            raise ChannelClosed("channel is closed")
        await self._queue.put(event)
        if self._terminal is not None and self._terminal(event):
            await self.close()

    async def close(self) -> None:
        """Producer side: no more events. Idempotent."""
        if self._closed or self._cancelled:
            return
        self._closed = True
        await self._queue.put(_CLOSE)

    def cancel(self) -> None:
        """Consumer side: stop accepting events and drop anything queued."""
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        while not self._cancelled:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


async def stream_from(channel: EventChannel, producer: "asyncio.Task[Any]") -> AsyncIterator[Any]:
    """
    Yield everything `producer` sends into `channel`.

    If the consumer stops iterating before the channel is closed, the channel
    is cancelled and so is the producer task.
    """
    finished = False
    try:
        async for event in channel:
            yield event
        finished = True
    finally:
        if finished:
            await producer
        elif not producer.done():
            channel.cancel()
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)


class WorkflowStreamGuard:
    """
    Enforces the ordering invariants of a workflow update stream.

    - phases start in the declared order, each at most once
    - a phase-complete follows exactly one phase-start for that phase
    - nothing follows a terminal update
    """

    def __init__(self, phase_order: List[str]):
        self.phase_order = list(phase_order)
        self._started: List[str] = []
        self._open_phase: Optional[str] = None
        self._terminated = False
        self._started_workflow = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def check(self, update: WorkflowUpdate) -> WorkflowUpdate:
        if self._terminated:
            raise WorkflowAbortError(
                f"'{update.type.value}' emitted after the terminal event", phase=update.phase
            )

        kind = update.type
        if kind == WorkflowUpdateType.WORKFLOW_START:
            if self._started_workflow:
                raise WorkflowAbortError("workflow-start emitted twice")
            self._started_workflow = True
        elif kind == WorkflowUpdateType.PHASE_START:
            self._check_phase_start(update.phase)
        elif kind == WorkflowUpdateType.PHASE_COMPLETE:
            if update.phase is None or update.phase != self._open_phase:
                raise WorkflowAbortError(
                    f"phase-complete for '{update.phase}' without a matching phase-start",
                    phase=update.phase,
                )
            self._open_phase = None
        elif kind in TERMINAL_UPDATES:
            if kind == WorkflowUpdateType.WORKFLOW_COMPLETE and self._open_phase is not None:
                raise WorkflowAbortError(
                    f"workflow-complete while phase '{self._open_phase}' is still open",
                    phase=self._open_phase,
                )
            self._terminated = True
        return update

    def _check_phase_start(self, phase: Optional[str]) -> None:
        if phase not in self.phase_order:
            raise WorkflowAbortError(f"unknown phase '{phase}'", phase=phase)
        if self._open_phase is not None:
            raise WorkflowAbortError(
                f"phase '{phase}' started while '{self._open_phase}' is open", phase=phase
            )
        expected = self.phase_order[len(self._started)] if len(self._started) < len(self.phase_order) else None
        if phase != expected:
            raise WorkflowAbortError(
                f"phase '{phase}' started out of order (expected '{expected}')", phase=phase
            )
        self._started.append(phase)
        self._open_phase = phase


class TaskEventType(Enum):
    TASK_STATUS = "task-status"
    TOOL_CALL = "tool-call"


@dataclass
class TaskEvent:
    """Intermediate activity inside one agent task, reported as it happens."""
    type: TaskEventType
    agent_name: str
    task_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    phase: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "agentName": self.agent_name,
            "taskId": self.task_id,
            "phase": self.phase,
            "data": self.data,
        }


TaskListener = Callable[[TaskEvent], Awaitable[None]]
