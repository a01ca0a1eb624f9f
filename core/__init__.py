from .types import (
    TaskStatus,
    WorkflowStatus,
    PhaseStatus,
    PhaseName,
    ToolCallStatus,
    AgentDescriptor,
    AgentTask,
    AgentStats,
    Phase,
    WorkflowRun,
    ToolCall,
    Source,
    ConversationMessage,
    AssistantMessage,
)
from .errors import (
    OrchestrationError,
    ValidationError,
    ToolExecutionError,
    AgentTaskError,
    PhaseUnrecoverableError,
    WorkflowAbortError,
    TaskError,
    classify_error,
)
from .events import (
    EventType,
    StreamEvent,
    WorkflowUpdate,
    WorkflowUpdateType,
    EventChannel,
    ChannelClosed,
    WorkflowStreamGuard,
    TaskEvent,
    HEARTBEAT_FRAME,
)
from .base_agent import Agent, LLMAgent, AgentContext, ToolSession
from .tools import Tool, ToolRegistry, RetryPolicy, RateLimit
from .stats import StatsAggregator
from .runner import AgentTaskRunner, TaskOutcome
from .llm import LLMProvider, create_llm_client, create_available_clients, get_default_model

__all__ = [
    "TaskStatus",
    "WorkflowStatus",
    "PhaseStatus",
    "PhaseName",
    "ToolCallStatus",
    "AgentDescriptor",
    "AgentTask",
    "AgentStats",
    "Phase",
    "WorkflowRun",
    "ToolCall",
    "Source",
    "ConversationMessage",
    "AssistantMessage",
    "OrchestrationError",
    "ValidationError",
    "ToolExecutionError",
    "AgentTaskError",
    "PhaseUnrecoverableError",
    "WorkflowAbortError",
    "TaskError",
    "classify_error",
    "EventType",
    "StreamEvent",
    "WorkflowUpdate",
    "WorkflowUpdateType",
    "EventChannel",
    "ChannelClosed",
    "WorkflowStreamGuard",
    "TaskEvent",
    "HEARTBEAT_FRAME",
    "Agent",
    "LLMAgent",
    "AgentContext",
    "ToolSession",
    "Tool",
    "ToolRegistry",
    "RetryPolicy",
    "RateLimit",
    "StatsAggregator",
    "AgentTaskRunner",
    "TaskOutcome",
    "LLMProvider",
    "create_llm_client",
    "create_available_clients",
    "get_default_model",
]
