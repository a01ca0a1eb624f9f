"""Shared fixtures: scripted agents, a scripted streaming LLM and fast options."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from agents.orchestrator import PHASE_PLAN
from config import OrchestratorOptions
from core.base_agent import Agent, AgentContext
from core.errors import AgentTaskError, ValidationError
from core.llm import StreamChunk
from core.stats import StatsAggregator
from tools import create_default_registry


class ScriptedAgent(Agent):
    """Agent whose behaviour is fixed up front.

    behaviour: "ok", "fail" (always raises AgentTaskError), "invalid"
    (raises ValidationError) or "hang" (never finishes).
    """

    def __init__(
        self,
        name: str,
        behaviour: str = "ok",
        delay: float = 0.0,
        fail_times: int = 0,
        output: Optional[Dict[str, Any]] = None,
        tool: Optional[str] = None,
    ):
        self.key = name
        self.description = f"Scripted {name} agent"
        self.capabilities = ("testing",)
        super().__init__()
        self.behaviour = behaviour
        self.delay = delay
        self.fail_times = fail_times
        self.output = output or {}
        self.tool = tool
        self.calls = 0
        self.inputs: List[Dict[str, Any]] = []

    async def execute(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        self.calls += 1
        self.inputs.append(input_data)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.behaviour == "hang":
            await asyncio.sleep(3600)
        if self.behaviour == "invalid":
            raise ValidationError("Required field missing: company_name")
        if self.behaviour == "fail":
            raise AgentTaskError(f"{self.name} exploded", agent_name=self.name)
        if self.calls <= self.fail_times:
            raise AgentTaskError(f"{self.name} transient failure", agent_name=self.name)
        if self.tool:
            await context.tools.call(self.tool, query=input_data["company_name"])
        return {"summary": f"{self.name} done", **self.output}


class ScriptedLLM:
    """Streaming LLM that replays one scripted turn per call."""

    default_model = "scripted"

    def __init__(self, turns: List[List[StreamChunk]], fail: bool = False):
        self.turns = list(turns)
        self.fail = fail
        self.requests: List[List[Dict[str, Any]]] = []

    async def stream(self, messages, tools=None, **kwargs):
        self.requests.append(list(messages))
        if self.fail:
            raise RuntimeError("provider unavailable")
        turn = self.turns.pop(0) if len(self.turns) > 1 else self.turns[0]
        for chunk in turn:
            yield chunk


def make_agents(**overrides: ScriptedAgent) -> Dict[str, Agent]:
    """A scripted agent for every planned name, with per-name overrides."""
    agents: Dict[str, Agent] = {}
    for _, names in PHASE_PLAN:
        for name in names:
            agents[name] = overrides.get(name) or ScriptedAgent(name)
    return agents


@pytest.fixture
def fast_options() -> OrchestratorOptions:
    return OrchestratorOptions(
        agent_timeout_seconds=1.0,
        retry_attempts=2,
        retry_delay_seconds=0.0,
        max_parallel_agents=5,
        tool_timeout_seconds=1.0,
    )


@pytest.fixture
def registry(fast_options):
    return create_default_registry(options=fast_options)


@pytest.fixture
def stats() -> StatsAggregator:
    return StatsAggregator()
