from enum import Enum
from typing import List, Dict, Any, Optional, FrozenSet
from dataclasses import dataclass, field
from datetime import datetime
import uuid


def generate_id() -> str:
    return str(uuid.uuid4())


class TaskStatus(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYING = "failed-retrying"
    FAILED_TERMINAL = "failed-terminal"


class WorkflowStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


class PhaseName(Enum):
    INITIAL_RESEARCH = "initial-research"
    DEEP_ANALYSIS = "deep-analysis"
    SYNTHESIS = "synthesis"
    QUALITY_ASSURANCE = "quality-assurance"


class ToolCallStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of a registered agent. Never mutated."""
    name: str
    description: str
    capabilities: FrozenSet[str] = frozenset()
    display_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name or self.name,
            "description": self.description,
            "capabilities": sorted(self.capabilities),
        }


@dataclass
class ConversationMessage:
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class Source:
    """A source backing research findings."""
    title: str
    url: str
    snippet: str = ""
    relevance_score: float = 0.0

    @classmethod
    def from_result(cls, item: Dict[str, Any]) -> "Source":
        return cls(
            title=item.get("title", ""),
            url=item.get("url", ""),
            snippet=item.get("snippet", item.get("content", "")),
            relevance_score=item.get("relevance_score", item.get("score", 0.0)) or 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "relevance_score": self.relevance_score,
        }


@dataclass
class AgentTask:
    """One attempt-sequence of one agent's work inside one phase."""
    agent_name: str
    phase: Optional[str] = None
    workflow_id: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_id)
    status: TaskStatus = TaskStatus.QUEUED
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    attempt: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agentName": self.agent_name,
            "phase": self.phase,
            "workflowId": self.workflow_id,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "attempt": self.attempt,
            "error": self.error,
        }


@dataclass
class AgentStats:
    """Rolling metrics for one agent (or one tool)."""
    name: str
    tasks_completed: int = 0
    tasks_failed: int = 0
    average_execution_time: float = 0.0  # milliseconds
    min_execution_time: Optional[float] = None
    max_execution_time: Optional[float] = None
    success_rate: float = 1.0
    last_execution_time: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.tasks_completed + self.tasks_failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "tasksCompleted": self.tasks_completed,
            "tasksFailed": self.tasks_failed,
            "averageExecutionTime": self.average_execution_time,
            "minExecutionTime": self.min_execution_time,
            "maxExecutionTime": self.max_execution_time,
            "successRate": self.success_rate,
            "lastExecutionTime": (
                self.last_execution_time.isoformat() if self.last_execution_time else None
            ),
            "errors": list(self.errors),
        }


@dataclass
class Phase:
    """An ordered workflow stage with a fixed set of agents."""
    name: PhaseName
    assigned_agents: List[str]
    status: PhaseStatus = PhaseStatus.PENDING
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def succeeded_agents(self) -> List[str]:
        return [name for name in self.assigned_agents if name not in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "assignedAgents": list(self.assigned_agents),
            "status": self.status.value,
            "results": self.results,
            "errors": dict(self.errors),
        }


@dataclass
class WorkflowRun:
    """One end-to-end execution of all phases for one research request."""
    company_name: str
    phases: List[Phase]
    research_goals: List[str] = field(default_factory=list)
    id: str = field(default_factory=generate_id)
    status: WorkflowStatus = WorkflowStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def failed_agents(self) -> List[str]:
        return [name for phase in self.phases for name in phase.errors]

    def duration_ms(self) -> int:
        if not self.started_at:
            return 0
        end = self.completed_at or datetime.now()
        return int((end - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyName": self.company_name,
            "researchGoals": list(self.research_goals),
            "status": self.status.value,
            "phases": [p.to_dict() for p in self.phases],
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass
class ToolCall:
    """One invocation of a registered tool."""
    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_id)
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # not_found, validation, rate_limited, timeout, execution
    duration_ms: Optional[float] = None
    retry_count: int = 0
    cached: bool = False

    @property
    def success(self) -> bool:
        return self.status == ToolCallStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "input": self.input,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "errorKind": self.error_kind,
            "duration": self.duration_ms,
            "retryCount": self.retry_count,
            "cached": self.cached,
        }


@dataclass
class AssistantMessage:
    """The message assembled by the reasoning loop for its `done` event."""
    content: str = ""
    sources: List[Source] = field(default_factory=list)
    reasoning: str = ""
    id: str = field(default_factory=lambda: f"msg-{uuid.uuid4().hex[:12]}")
    role: str = "assistant"
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "sources": [s.to_dict() for s in self.sources],
            "reasoning": self.reasoning,
            "timestamp": self.timestamp.isoformat(),
        }
