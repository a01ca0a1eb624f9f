from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Iterable
from dataclasses import dataclass
import json
import logging

from .errors import AgentTaskError, ToolExecutionError, ValidationError
from .events import TaskEvent, TaskEventType, TaskListener
from .tools import ToolRegistry
from .types import AgentDescriptor, ToolCall, ToolCallStatus
from .utils import clean_json_response

logger = logging.getLogger(__name__)


class ToolSession:
    """
    Task-scoped access to the Tool Registry.

    Records every ToolCall the task makes and reports each one to the task
    listener when it starts and again when it resolves.
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry],
        agent_name: str,
        task_id: str,
        phase: Optional[str] = None,
        listener: Optional[TaskListener] = None,
    ):
        self.registry = registry
        self.agent_name = agent_name
        self.task_id = task_id
        self.phase = phase
        self.listener = listener
        self.calls: List[ToolCall] = []

    async def _notify(self, call: ToolCall) -> None:
        if self.listener is None:
            return
        await self.listener(TaskEvent(
            type=TaskEventType.TOOL_CALL,
            agent_name=self.agent_name,
            task_id=self.task_id,
            phase=self.phase,
            data=call.to_dict(),
        ))

    async def execute(self, tool_name: str, parameters: Optional[Dict[str, Any]] = None) -> ToolCall:
        """Run a tool; failures come back as an ERROR ToolCall."""
        call = ToolCall(name=tool_name, input=parameters or {})
        self.calls.append(call)
        if self.registry is None:
            call.error = "No tool registry available"
            call.error_kind = "not_found"
            call.status = ToolCallStatus.ERROR
            await self._notify(call)
            return call
        await self._notify(call)
        await self.registry.execute(tool_name, parameters or {}, call=call)
        await self._notify(call)
        return call

    async def call(self, tool_name: str, **parameters) -> Any:
        """Run a tool and return its result, raising on failure."""
        call = await self.execute(tool_name, parameters)
        if call.success:
            return call.result
        if call.error_kind in ("validation", "not_found"):
            raise ValidationError(call.error or f"Invalid tool call: {tool_name}")
        raise ToolExecutionError(call.error or f"{tool_name} failed", tool_name=tool_name)


@dataclass
class AgentContext:
    """Everything an agent attempt may use besides its input."""
    task_id: str
    tools: ToolSession
    phase: Optional[str] = None
    workflow_id: Optional[str] = None
    attempt: int = 1


class Agent(ABC):
    """Base class for all agents in the orchestration system."""

    key: str = ""
    display_name: str = ""
    description: str = ""
    capabilities: Iterable[str] = ()

    def __init__(self, llm_client: Any = None, model: Optional[str] = None):
        self.llm_client = llm_client
        self.model = model or getattr(llm_client, "default_model", None)
        self.descriptor = AgentDescriptor(
            name=self.key,
            description=self.description,
            capabilities=frozenset(self.capabilities),
            display_name=self.display_name or self.key.title(),
        )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def execute(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        """Run one attempt of this agent's work."""
        pass

    def validate_input(self, input_data: Any, required_fields: Iterable[str]) -> None:
        """Raise ValidationError if any required field is missing."""
        if not isinstance(input_data, dict):
            raise ValidationError(f"Invalid input for {self.name}: expected an object")
        for name in required_fields:
            if input_data.get(name) in (None, ""):
                raise ValidationError(f"Required field missing: {name}")

    async def _call_llm(self, messages: List[Dict[str, str]], max_tokens: int = 2048) -> str:
        """Make a call to the LLM."""
        try:
            response = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.3,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            raise AgentTaskError(f"LLM call failed: {e}", agent_name=self.name) from e


class LLMAgent(Agent):
    """
    Agent that gathers evidence through tools and asks the LLM for a JSON
    answer. Without an LLM client it returns a deterministic summary of the
    gathered evidence instead.
    """

    required_fields: Iterable[str] = ("company_name",)
    system_prompt: str = ""

    async def gather(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        """Collect evidence before asking the LLM. Override in subclasses."""
        return {}

    def build_prompt(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> str:
        goals = input_data.get("research_goals") or []
        sections = [f"Company: {input_data.get('company_name')}"]
        if goals:
            sections.append("Research goals:\n" + "\n".join(f"- {g}" for g in goals))
        if evidence:
            sections.append("Evidence:\n" + json.dumps(evidence, indent=2, default=str)[:12000])
        if input_data.get("data"):
            sections.append(
                "Findings from earlier phases:\n"
                + json.dumps(input_data["data"], indent=2, default=str)[:12000]
            )
        sections.append("Respond with a single JSON object.")
        return "\n\n".join(sections)

    @abstractmethod
    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        """Result built without an LLM."""
        pass

    async def execute(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        self.validate_input(input_data, self.required_fields)
        evidence = await self.gather(input_data, context)

        if self.llm_client is None:
            result = self.fallback(input_data, evidence)
        else:
            content = await self._call_llm([
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": self.build_prompt(input_data, evidence)},
            ])
            try:
                result = json.loads(clean_json_response(content))
            except json.JSONDecodeError:
                logger.debug("%s returned non-JSON output", self.name)
                result = {"summary": content}
            if not isinstance(result, dict):
                result = {"summary": result}

        sources = evidence.get("sources")
        if sources and "sources" not in result:
            result["sources"] = sources
        result.setdefault("agent", self.descriptor.display_name)
        return result
