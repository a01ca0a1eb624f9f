"""
Error taxonomy for the orchestration core.

Task-level errors are recovered by the task runner (retry) and folded into
phase results. Only phase-unrecoverable and internal faults reach the event
stream as a `workflow-error`.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional


class OrchestrationError(Exception):
    """Base class for all orchestration errors."""


class ValidationError(OrchestrationError):
    """Bad input to a task or tool call. Never retried."""


class ToolExecutionError(OrchestrationError):
    """Network, timeout or non-success result from an external capability."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class AgentTaskError(OrchestrationError):
    """Failure inside an agent's own logic."""

    def __init__(self, message: str, agent_name: Optional[str] = None, timed_out: bool = False):
        super().__init__(message)
        self.agent_name = agent_name
        self.timed_out = timed_out


class PhaseUnrecoverableError(OrchestrationError):
    """Too many agents assigned to a phase failed terminally."""

    def __init__(self, phase: str, errors: Dict[str, str]):
        failed = ", ".join(sorted(errors)) or "none"
        super().__init__(f"Phase '{phase}' failed: no agent succeeded (failed: {failed})")
        self.phase = phase
        self.errors = errors


class WorkflowAbortError(OrchestrationError):
    """Unexpected internal fault. Ends the workflow immediately."""

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.phase = phase


@dataclass
class TaskError:
    """Classified, serializable view of a task failure."""
    kind: str  # "validation", "tool", "agent", "timeout"
    message: str
    retryable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


def is_retryable(exc: BaseException) -> bool:
    """Validation errors are terminal; everything else may be retried."""
    return not isinstance(exc, ValidationError)


def classify_error(exc: BaseException) -> TaskError:
    """Map any exception raised by an agent attempt to a TaskError."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, ValidationError):
        kind = "validation"
    elif isinstance(exc, asyncio.TimeoutError) or getattr(exc, "timed_out", False):
        kind = "timeout"
    elif isinstance(exc, ToolExecutionError):
        kind = "tool"
    else:
        kind = "agent"
    return TaskError(kind=kind, message=message, retryable=is_retryable(exc))
