"""
Workflow Scheduler - drives the fixed phase sequence for one research request.

Each phase fans out one task runner per assigned agent, joins them, folds the
per-agent results and emits a phase-complete update. Updates are produced by
a background task into a bounded EventChannel; the async iterator returned by
`run()` consumes that channel, and closing it early cancels the producer and
every in-flight agent task.
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple, Union

from config import OrchestratorOptions
from core.base_agent import Agent
from core.errors import PhaseUnrecoverableError, WorkflowAbortError
from core.events import (
    ChannelClosed,
    EventChannel,
    TaskEvent,
    TaskListener,
    WorkflowStreamGuard,
    WorkflowUpdate,
    stream_from,
)
from core.runner import AgentTaskRunner, TaskOutcome
from core.stats import StatsAggregator
from core.tools import ToolRegistry
from core.types import (
    AgentDescriptor,
    AgentStats,
    AgentTask,
    Phase,
    PhaseName,
    PhaseStatus,
    WorkflowRun,
    WorkflowStatus,
)
from tools import create_default_registry

from .analysis_agents import (
    AnalysisAgent,
    CompetitiveAgent,
    FinancialAgent,
    OpportunityAgent,
    RiskAgent,
)
from .quality_agents import QualityAgent, ValidationAgent
from .research_agents import ContactAgent, MarketAgent, NewsAgent, ProductAgent, ResearchAgent
from .synthesis_agents import StrategyAgent, SynthesisAgent, WritingAgent

logger = logging.getLogger(__name__)


PHASE_PLAN: List[Tuple[PhaseName, List[str]]] = [
    (PhaseName.INITIAL_RESEARCH, ["research", "news", "product", "market", "contact"]),
    (PhaseName.DEEP_ANALYSIS, ["financial", "competitive", "risk", "opportunity"]),
    (PhaseName.SYNTHESIS, ["synthesis", "strategy", "writing"]),
    (PhaseName.QUALITY_ASSURANCE, ["validation", "quality"]),
]

# What each initial-research agent concentrates on.
INITIAL_FOCUS = {
    "research": "overview",
    "news": "recent-news",
    "product": "products-services",
    "market": "market-position",
    "contact": "decision-makers",
}

AGENT_CLASSES = (
    ResearchAgent, NewsAgent, ProductAgent, MarketAgent, ContactAgent,
    FinancialAgent, CompetitiveAgent, RiskAgent, OpportunityAgent,
    SynthesisAgent, StrategyAgent, WritingAgent,
    ValidationAgent, QualityAgent,
    AnalysisAgent,
)


def create_default_agents(llm_client: Any = None, model: Optional[str] = None) -> Dict[str, Agent]:
    """Instantiate the full agent roster, keyed by agent name."""
    agents = [cls(llm_client, model=model) for cls in AGENT_CLASSES]
    return {agent.name: agent for agent in agents}


class AgentOrchestrator:
    """
    Coordinates the agent roster through the research phases.

    One instance is kept per caller session. Agent statistics live for the
    lifetime of the instance; workflow runs are kept only for the most
    recent `max_runs` requests.
    """

    def __init__(
        self,
        agents: Optional[Union[Dict[str, Agent], Iterable[Agent]]] = None,
        options: Optional[OrchestratorOptions] = None,
        tool_registry: Optional[ToolRegistry] = None,
        stats: Optional[StatsAggregator] = None,
        llm_client: Any = None,
        phase_plan: Optional[List[Tuple[PhaseName, List[str]]]] = None,
        max_runs: int = 20,
    ):
        self.options = (options or OrchestratorOptions()).validate()

        if agents is None:
            self.agents = create_default_agents(llm_client)
        elif isinstance(agents, dict):
            self.agents = dict(agents)
        else:
            self.agents = {agent.name: agent for agent in agents}

        self.phase_plan = list(phase_plan or PHASE_PLAN)
        missing = [
            name for _, names in self.phase_plan for name in names if name not in self.agents
        ]
        if missing:
            raise ValueError(f"Phase plan references unknown agents: {', '.join(missing)}")

        self.tool_registry = (
            tool_registry if tool_registry is not None else create_default_registry(options=self.options)
        )
        self.stats = stats or StatsAggregator()
        self.runner = AgentTaskRunner.from_options(self.stats, self.tool_registry, self.options)

        self.max_runs = max_runs
        self._runs: "OrderedDict[str, WorkflowRun]" = OrderedDict()
        self._active: Dict[str, AgentTask] = {}

    @property
    def phase_order(self) -> List[str]:
        return [name.value for name, _ in self.phase_plan]

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_agent(self, name: str) -> Optional[Agent]:
        return self.agents.get(name)

    def get_all_agents(self) -> List[AgentDescriptor]:
        return [agent.descriptor for agent in self.agents.values()]

    def get_agent_stats(self) -> Dict[str, AgentStats]:
        """Snapshot of every registered agent's stats, including idle agents."""
        return {name: self.stats.snapshot(name) for name in self.agents}

    def get_active_tasks(self) -> List[Dict[str, Any]]:
        return [task.to_dict() for task in list(self._active.values())]

    def get_run(self, workflow_id: str) -> Optional[WorkflowRun]:
        return self._runs.get(workflow_id)

    # ------------------------------------------------------------------
    # Workflow execution
    # ------------------------------------------------------------------

    def _new_run(self, company_name: str, research_goals: Optional[List[str]]) -> WorkflowRun:
        workflow = WorkflowRun(
            company_name=company_name,
            research_goals=list(research_goals or []),
            phases=[Phase(name=name, assigned_agents=list(names)) for name, names in self.phase_plan],
        )
        self._runs[workflow.id] = workflow
        while len(self._runs) > self.max_runs:
            self._runs.popitem(last=False)
        return workflow

    async def run(
        self,
        company_name: str,
        research_goals: Optional[List[str]] = None,
        listener: Optional[TaskListener] = None,
    ) -> AsyncIterator[WorkflowUpdate]:
        """
        Run every phase for `company_name` and yield the workflow updates.

        The sequence always ends with exactly one workflow-complete or
        workflow-error. Task-level activity (status transitions and tool
        calls) goes to `listener` as it happens.
        """
        workflow = self._new_run(company_name, research_goals)
        channel = EventChannel(self.options.channel_size, terminal=lambda u: u.is_terminal)
        producer = asyncio.create_task(self._produce(workflow, channel, self._relay(listener)))
        updates = stream_from(channel, producer)
        try:
            async for update in updates:
                yield update
        finally:
            await updates.aclose()

    def _relay(self, listener: Optional[TaskListener]) -> Optional[TaskListener]:
        """Task listener that never fails the task it reports on."""
        if listener is None:
            return None

        async def relay(event: TaskEvent) -> None:
            try:
                await listener(event)
            except ChannelClosed:
                logger.debug("Task event for %s dropped, listener closed", event.agent_name)
            except Exception:
                logger.warning("Task listener failed on %s", event.type.value, exc_info=True)

        return relay

    async def _produce(
        self,
        workflow: WorkflowRun,
        channel: EventChannel,
        listener: Optional[TaskListener],
    ) -> None:
        guard = WorkflowStreamGuard(self.phase_order)

        async def emit(update: WorkflowUpdate) -> None:
            await channel.send(guard.check(update))

        try:
            await self._execute(workflow, emit, listener)
        except ChannelClosed:
            workflow.status = WorkflowStatus.FAILED
            workflow.error = "Stream consumer disconnected"
            logger.info("Workflow %s stopped: consumer disconnected", workflow.id)
        except asyncio.CancelledError:
            workflow.status = WorkflowStatus.FAILED
            workflow.error = "Cancelled"
            workflow.completed_at = datetime.now()
            raise
        except PhaseUnrecoverableError as e:
            logger.error("Workflow %s halted: %s", workflow.id, e)
            await self._abort(workflow, channel, guard, str(e), e.phase)
        except WorkflowAbortError as e:
            logger.error("Workflow %s aborted: %s", workflow.id, e)
            await self._abort(workflow, channel, guard, str(e), e.phase)
        except Exception as e:
            logger.exception("Unexpected fault in workflow %s", workflow.id)
            await self._abort(workflow, channel, guard, f"Internal error: {e}", self._current_phase(workflow))
        finally:
            await channel.close()

    async def _execute(self, workflow: WorkflowRun, emit, listener: Optional[TaskListener]) -> None:
        workflow.status = WorkflowStatus.RUNNING
        workflow.started_at = datetime.now()
        logger.info("Workflow %s started for %s", workflow.id, workflow.company_name)
        await emit(WorkflowUpdate.workflow_start(workflow.id, workflow.company_name))

        data: Dict[str, Any] = {}
        for phase in workflow.phases:
            await emit(WorkflowUpdate.phase_start(workflow.id, phase.name.value, phase.assigned_agents))
            await self._run_phase(workflow, phase, data, listener)
            await emit(WorkflowUpdate.phase_complete(workflow.id, phase.name.value, dict(phase.results)))
            if phase.status == PhaseStatus.ERROR:
                raise PhaseUnrecoverableError(phase.name.value, dict(phase.errors))
            data.update(phase.results)

        workflow.status = WorkflowStatus.COMPLETED
        workflow.completed_at = datetime.now()
        logger.info("Workflow %s completed in %dms", workflow.id, workflow.duration_ms())
        await emit(WorkflowUpdate.workflow_complete(workflow.id, self._summary(workflow)))

    async def _run_phase(
        self,
        workflow: WorkflowRun,
        phase: Phase,
        data: Dict[str, Any],
        listener: Optional[TaskListener],
    ) -> None:
        phase.status = PhaseStatus.ACTIVE
        phase.started_at = datetime.now()
        logger.info("Phase %s started with %d agents", phase.name.value, len(phase.assigned_agents))
        semaphore = asyncio.Semaphore(self.options.max_parallel_agents)

        async def run_task(agent_name: str) -> TaskOutcome:
            task = AgentTask(
                agent_name=agent_name,
                phase=phase.name.value,
                workflow_id=workflow.id,
                input=self._build_input(workflow, phase, agent_name, data),
            )
            self._active[task.id] = task
            try:
                async with semaphore:
                    return await self.runner.execute_with_retry(
                        self.agents[agent_name],
                        task.input,
                        phase=task.phase,
                        workflow_id=workflow.id,
                        listener=listener,
                        task=task,
                    )
            finally:
                self._active.pop(task.id, None)

        outcomes = await asyncio.gather(*(run_task(name) for name in phase.assigned_agents))

        for outcome in outcomes:
            name = outcome.task.agent_name
            phase.results[name] = outcome.result_entry()
            if not outcome.success:
                phase.errors[name] = outcome.error.message if outcome.error else "Unknown error"

        phase.completed_at = datetime.now()
        required = min(self.options.min_successful_agents, len(phase.assigned_agents))
        succeeded = len(phase.succeeded_agents)
        phase.status = PhaseStatus.COMPLETED if succeeded >= required else PhaseStatus.ERROR
        logger.info(
            "Phase %s finished: %d/%d agents succeeded",
            phase.name.value, succeeded, len(phase.assigned_agents),
        )

    def _build_input(
        self,
        workflow: WorkflowRun,
        phase: Phase,
        agent_name: str,
        data: Dict[str, Any],
    ) -> Dict[str, Any]:
        input_data: Dict[str, Any] = {
            "company_name": workflow.company_name,
            "research_goals": list(workflow.research_goals),
        }
        if phase.name == PhaseName.INITIAL_RESEARCH:
            input_data["focus"] = INITIAL_FOCUS.get(agent_name, "general")
        else:
            input_data["data"] = dict(data)
        return input_data

    async def _abort(
        self,
        workflow: WorkflowRun,
        channel: EventChannel,
        guard: WorkflowStreamGuard,
        message: str,
        phase: Optional[str],
    ) -> None:
        workflow.status = WorkflowStatus.FAILED
        workflow.error = message
        workflow.completed_at = datetime.now()
        if guard.terminated or channel.closed:
            return
        try:
            await channel.send(guard.check(WorkflowUpdate.workflow_error(workflow.id, message, phase)))
        except ChannelClosed:
            logger.info("Workflow %s error not delivered: consumer disconnected", workflow.id)

    @staticmethod
    def _current_phase(workflow: WorkflowRun) -> Optional[str]:
        for phase in workflow.phases:
            if phase.status == PhaseStatus.ACTIVE:
                return phase.name.value
        return None

    def _summary(self, workflow: WorkflowRun) -> Dict[str, Any]:
        return {
            "workflowId": workflow.id,
            "companyName": workflow.company_name,
            "status": workflow.status.value,
            "phases": [
                {
                    "name": phase.name.value,
                    "status": phase.status.value,
                    "agents": list(phase.assigned_agents),
                    "results": dict(phase.results),
                }
                for phase in workflow.phases
            ],
            "failedAgents": workflow.failed_agents(),
            "durationMs": workflow.duration_ms(),
        }
