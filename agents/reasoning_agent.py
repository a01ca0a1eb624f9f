"""
Reasoning Agent - the default per-message driver for chat.

Runs a bounded think -> act -> observe loop against a streaming LLM, calling
registered tools when the model asks for them. Messages that read like a
request for in-depth company research are delegated to the multi-agent
workflow; its updates are relayed alongside the loop's own events.

Every invocation ends with exactly one `done` event whose message content is
the concatenation of all `content` chunks streamed before it.
"""

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from config import OrchestratorOptions
from core.events import (
    ChannelClosed,
    EventChannel,
    EventType,
    StreamEvent,
    TaskEvent,
    TaskEventType,
    WorkflowUpdateType,
    stream_from,
)
from core.llm import ToolCallRequest
from core.tools import ToolRegistry
from core.types import AssistantMessage, ConversationMessage, Source, ToolCall, ToolCallStatus, generate_id
from core.utils import dedupe_sources
from tools import create_default_registry

from .orchestrator import AgentOrchestrator

logger = logging.getLogger(__name__)


WORKFLOW_KEYWORDS = (
    "research", "analyze", "plan", "account", "generate",
    "comprehensive", "full", "complete", "detailed",
)

_NAME = r"([A-Z][\w&.'-]*(?:\s+[A-Z][\w&.'-]*)*)"
_COMPANY_PATTERNS = [
    re.compile(r"(?i:research|analy[sz]e|generate.*plan.*for|company|about|study|investigate)\s+" + _NAME),
    re.compile(r"(?i:\bfor)\s+" + _NAME),
    re.compile(r"(?:^|\s)" + _NAME + r"\s+(?i:company|inc|corp|llc|ltd)\b"),
    re.compile(r"(?:^|\s)" + _NAME + r"[.!?]?$"),
]
_FALSE_POSITIVES = {"Research", "Company", "Plan", "Account", "Generate", "Create", "I", "Please"}


def extract_company_name(message: str) -> Optional[str]:
    """Best-effort company name from a chat message, or None."""
    for pattern in _COMPANY_PATTERNS:
        match = pattern.search(message.strip())
        if match:
            name = match.group(1).strip().rstrip(".,!?")
            if name and name not in _FALSE_POSITIVES:
                return name
    return None


def detect_workflow_intent(message: str) -> bool:
    text = message.lower()
    return any(keyword in text for keyword in WORKFLOW_KEYWORDS)


def render_report(company_name: str, summary: Dict[str, Any]) -> str:
    """Markdown report for a finished workflow."""
    results: Dict[str, Any] = {}
    for phase in summary.get("phases", []):
        results.update(phase.get("results", {}))

    writing = results.get("writing") or {}
    if isinstance(writing, dict) and writing.get("document") and "error" not in writing:
        report = writing["document"].rstrip() + "\n"
    else:
        lines = [f"# Comprehensive Research Report: {company_name}", ""]
        for phase in summary.get("phases", []):
            lines.append(f"## {phase['name'].replace('-', ' ').title()}")
            lines.append("")
            for agent_name, result in phase.get("results", {}).items():
                if not isinstance(result, dict):
                    continue
                if "error" in result:
                    lines.append(f"- **{agent_name}**: unavailable ({result['error']})")
                    continue
                text = result.get("summary") or result.get("overview") or result.get("market_position")
                if text:
                    lines.append(f"- **{agent_name}**: {text}")
                else:
                    lines.append(f"- **{agent_name}**: {len(result)} findings")
            lines.append("")
        report = "\n".join(lines).rstrip() + "\n"

    failed = summary.get("failedAgents") or []
    if failed:
        report += f"\n_Partial results: {', '.join(failed)} did not complete._\n"
    return report


class TurnWriter:
    """Writes one turn's events and assembles its final message."""

    def __init__(self, channel: EventChannel):
        self.channel = channel
        self.parts: List[str] = []
        self.reasoning: List[str] = []
        self._sources: Dict[str, Source] = {}

    async def emit(self, event_type: EventType, data: Any = None) -> None:
        await self.channel.send(StreamEvent(event_type, data))

    async def content(self, text: str) -> None:
        if not text:
            return
        self.parts.append(text)
        await self.emit(EventType.CONTENT, text)

    async def reason(self, text: str) -> None:
        self.reasoning.append(text)
        await self.emit(EventType.REASONING, text)

    async def step(self, label: str, status: str = "completed", agent: str = "System") -> None:
        await self.emit(EventType.STEP, {"label": label, "status": status, "agent": agent})

    async def log(self, message: str, level: str = "info", agent: str = "System") -> None:
        await self.emit(EventType.LOG, {"message": message, "level": level, "agent": agent})

    async def agent_update(self, message: str) -> None:
        await self.emit(EventType.AGENT_UPDATE, message)

    async def add_sources(self, items: List[Dict[str, Any]]) -> None:
        """Emit the sources not seen earlier in this turn."""
        new = []
        for item in dedupe_sources(items):
            url = item.get("url")
            if url and url not in self._sources:
                source = Source.from_result(item)
                self._sources[url] = source
                new.append(source)
        if new:
            await self.emit(EventType.SOURCES, [s.to_dict() for s in new])

    def message(self) -> AssistantMessage:
        return AssistantMessage(
            content="".join(self.parts),
            sources=list(self._sources.values()),
            reasoning="\n".join(self.reasoning),
        )


class ReasoningAgent:
    """
    Conversational driver for one chat session.

    Args:
        llm_clients: streaming LLM clients keyed by provider name, in
            preference order. With none, the loop answers from one web
            search.
        tool_registry: tools the model may call. Shared with the workflow.
        orchestrator: workflow scheduler used for research requests.
            Created on first use when not given.
    """

    def __init__(
        self,
        llm_clients: Optional[Dict[str, Any]] = None,
        tool_registry: Optional[ToolRegistry] = None,
        orchestrator: Optional[AgentOrchestrator] = None,
        options: Optional[OrchestratorOptions] = None,
        use_workflow: bool = True,
        history_limit: int = 50,
    ):
        self.options = (options or OrchestratorOptions()).validate()
        self.llm_clients = dict(llm_clients or {})
        self.provider_order = list(self.llm_clients)
        if tool_registry is None:
            tool_registry = orchestrator.tool_registry if orchestrator else create_default_registry(options=self.options)
        self.tool_registry = tool_registry
        self._orchestrator = orchestrator
        self.use_workflow = use_workflow
        self.max_iterations = self.options.max_iterations
        self.history_limit = history_limit
        self.history: List[ConversationMessage] = []
        self.current_company: Optional[str] = None

    def get_orchestrator(self) -> AgentOrchestrator:
        if self._orchestrator is None:
            clients = self._clients()
            self._orchestrator = AgentOrchestrator(
                options=self.options,
                tool_registry=self.tool_registry,
                llm_client=clients[0][1] if clients else None,
            )
        return self._orchestrator

    def set_provider_prefs(self, prefs: Dict[str, Any]) -> None:
        """
        Reorder or disable LLM providers.

        `prefs` looks like `{"order": ["openai", "anthropic"], "enabled":
        {"anthropic": false}}`. Unknown providers are ignored.
        """
        order = [name for name in prefs.get("order", []) if name in self.llm_clients]
        enabled = prefs.get("enabled", {})
        ordered = order + [name for name in self.llm_clients if name not in order]
        self.provider_order = [name for name in ordered if enabled.get(name, True)]

    def _clients(self) -> List[Tuple[str, Any]]:
        return [(name, self.llm_clients[name]) for name in self.provider_order if name in self.llm_clients]

    def _remember(self, role: str, content: str) -> None:
        self.history.append(ConversationMessage(role=role, content=content))
        if len(self.history) > self.history_limit:
            del self.history[: len(self.history) - self.history_limit]
        # A conversation sent to a model must open with a user turn
        while self.history and self.history[0].role != "user":
            del self.history[0]

    def clear_history(self) -> None:
        self.history.clear()
        self.current_company = None

    # ------------------------------------------------------------------
    # Message processing
    # ------------------------------------------------------------------

    async def process_message(
        self,
        text: str,
        provider_prefs: Optional[Dict[str, Any]] = None,
        research_goals: Optional[List[str]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the events for one user message, ending with `done`."""
        channel = EventChannel(self.options.channel_size, terminal=lambda e: e.type == EventType.DONE)
        producer = asyncio.create_task(self._produce(text, provider_prefs, research_goals, channel))
        events = stream_from(channel, producer)
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    async def _produce(
        self,
        text: str,
        provider_prefs: Optional[Dict[str, Any]],
        research_goals: Optional[List[str]],
        channel: EventChannel,
    ) -> None:
        turn = TurnWriter(channel)
        remembered = bool(text.strip())
        if remembered:
            self._remember("user", text)
        try:
            try:
                await self._handle(text, provider_prefs, research_goals or [], turn)
            except (ChannelClosed, asyncio.CancelledError):
                raise
            except Exception as e:
                logger.exception("Reasoning loop failed")
                error_message = (
                    f"I encountered an error: {e}. Please try again or check your API configuration."
                )
                await turn.log(error_message, "error")
                await turn.content(error_message)

            message = turn.message()
            if remembered:
                self._remember("assistant", message.content)
            await turn.emit(EventType.FINAL_ANSWER, message.content)
            await turn.emit(EventType.DONE, message)
        except ChannelClosed:
            logger.info("Chat consumer disconnected before done")
        finally:
            await channel.close()

    async def _handle(self, text: str, provider_prefs: Optional[Dict[str, Any]], goals: List[str], turn: TurnWriter) -> None:
        await turn.step("Query received")
        await turn.log(f'Processing query: "{text[:100]}"')

        if provider_prefs is not None:
            try:
                self.set_provider_prefs(provider_prefs)
            except Exception as e:
                logger.warning("Ignoring provider preferences %r: %s", provider_prefs, e)
                await turn.log("Provider preferences could not be applied", "warning")

        if not text.strip():
            await turn.content("Please tell me which company you'd like me to research.")
            return

        company = extract_company_name(text)
        if company:
            self.current_company = company
            await turn.log(f"Detected company: {company}", "success")

        if self.use_workflow and detect_workflow_intent(text):
            target = company or self.current_company
            if not target:
                await turn.reason("The request asks for research but names no company.")
                await turn.content(
                    "I'll help you research a company. Please specify which company you'd like me to research."
                )
                return
            await self._delegate(target, goals, turn)
            return

        if self._clients():
            await self._react(turn)
        else:
            await self._offline(text, turn)

    async def _delegate(self, company: str, goals: List[str], turn: TurnWriter) -> None:
        await turn.step("Multi-agent system activated", "active", "Orchestrator")
        await turn.reason(f"This is a multi-step research request; running the full agent workflow for {company}.")

        async def on_task_event(event: TaskEvent) -> None:
            if event.type == TaskEventType.TOOL_CALL:
                await turn.emit(EventType.TOOL_CALL, {**event.data, "agentName": event.agent_name, "phase": event.phase})
            else:
                await turn.agent_update(
                    f"{event.agent_name} agent is {event.data.get('status', 'working')} "
                    f"(attempt {event.data.get('attempt', 1)})"
                )

        updates = self.get_orchestrator().run(company, goals, listener=on_task_event)
        try:
            async for update in updates:
                await turn.emit(EventType.WORKFLOW_UPDATE, update)
                if update.type == WorkflowUpdateType.PHASE_START:
                    await turn.step(f"Phase: {update.phase}", "active", "Orchestrator")
                elif update.type == WorkflowUpdateType.PHASE_COMPLETE:
                    await turn.step(f"Phase: {update.phase}", "completed", "Orchestrator")
                    for result in (update.results or {}).values():
                        if isinstance(result, dict):
                            await turn.add_sources(result.get("sources") or [])
                elif update.type == WorkflowUpdateType.WORKFLOW_COMPLETE:
                    await turn.agent_update("Writing Agent is assembling the final report...")
                    for paragraph in render_report(company, update.summary or {}).split("\n\n"):
                        await turn.content(paragraph + "\n\n")
                elif update.type == WorkflowUpdateType.WORKFLOW_ERROR:
                    await turn.log(update.error or "Workflow failed", "error", "Orchestrator")
                    await turn.content(
                        f"The research workflow for {company} stopped"
                        f"{' during ' + update.phase if update.phase else ''}: {update.error}"
                    )
        finally:
            await updates.aclose()

    def _system_prompt(self) -> str:
        company = (
            f"The user is researching: {self.current_company}."
            if self.current_company
            else "The user has not yet specified a company to research."
        )
        return f"""You are an account research assistant. Produce factual, well-structured, actionable output.

{company}

Use the available tools when you need current information; avoid redundant calls.
Keep paragraphs short, cite sources inline as [S1], [S2] in the order they were found,
state limitations when data is missing, and never invent executives, financials or emails."""

    async def _react(self, turn: TurnWriter) -> None:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self._system_prompt()}]
        messages += [{"role": m.role, "content": m.content} for m in self.history if m.role in ("user", "assistant")]
        tools = self.tool_registry.to_openai_format()

        for iteration in range(1, self.max_iterations + 1):
            await turn.step(f"Thinking (iteration {iteration})", "active", "Reasoning")
            text, tool_calls = await self._generate(messages, tools, turn)
            if not tool_calls:
                await turn.step("Answer ready", "completed", "Editor")
                return

            await turn.reason(f"Calling {', '.join(c.name for c in tool_calls)} to gather information.")
            messages.append({
                "role": "assistant",
                "content": text,
                "tool_calls": [c.to_openai_format() for c in tool_calls],
            })
            for request in tool_calls:
                call = await self._run_tool(request, turn)
                observation = call.result if call.success else {"error": call.error}
                messages.append({
                    "role": "tool",
                    "tool_call_id": request.id,
                    "content": json.dumps(observation, default=str)[:8000],
                })

        logger.warning("Reasoning loop stopped after %d iterations", self.max_iterations)
        await turn.log("Maximum iterations reached", "warning", "Reasoning")
        await turn.content("\n\nMaximum iterations reached. Please try a more specific query.")

    async def _generate(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        turn: TurnWriter,
    ) -> Tuple[str, List[ToolCallRequest]]:
        """One model turn, streamed. Falls back to the next provider only if nothing was streamed yet."""
        last_error: Optional[Exception] = None
        for provider, client in self._clients():
            streamed: List[str] = []
            tool_calls: List[ToolCallRequest] = []
            try:
                async for chunk in client.stream(messages, tools=tools):
                    if chunk.text:
                        streamed.append(chunk.text)
                        await turn.content(chunk.text)
                    if chunk.tool_calls:
                        tool_calls = list(chunk.tool_calls)
                return "".join(streamed), tool_calls
            except ChannelClosed:
                raise
            except Exception as e:
                if streamed:
                    raise
                last_error = e
                logger.warning("Provider %s failed: %s", provider, e)
                await turn.log(f"Provider {provider} failed, trying the next one", "warning")
        raise RuntimeError(f"All LLM providers failed: {last_error}")

    @staticmethod
    def _describe(request: ToolCallRequest) -> str:
        args = request.arguments
        if request.name == "web_search":
            return f'Research Agent is searching for: "{args.get("query", "")}"'
        if request.name == "news_search":
            return f'News Agent is scanning recent news for: "{args.get("query", "")}"'
        if request.name == "company_search":
            return f"Research Agent is looking up {args.get('company_name', 'the company')}"
        return f"Running {request.name}"

    async def _run_tool(self, request: ToolCallRequest, turn: TurnWriter) -> ToolCall:
        await turn.agent_update(self._describe(request))
        call = ToolCall(name=request.name, input=dict(request.arguments), id=request.id or generate_id())
        call.status = ToolCallStatus.IN_PROGRESS
        await turn.emit(EventType.TOOL_CALL, call.to_dict())
        await self.tool_registry.execute(request.name, dict(request.arguments), call=call)
        await turn.emit(EventType.TOOL_CALL, call.to_dict())
        if call.success and isinstance(call.result, dict):
            await turn.add_sources(call.result.get("sources") or [])
        return call

    async def _offline(self, text: str, turn: TurnWriter) -> None:
        await turn.reason("No language model is configured; answering from a single web search.")
        query = text.strip()[:200]
        call = await self._run_tool(
            ToolCallRequest(id=generate_id(), name="web_search", arguments={"query": query}), turn
        )
        if not call.success:
            await turn.content(f"I couldn't search for that right now: {call.error}")
            return
        results = call.result.get("results", [])
        if not results:
            await turn.content(f"I found no results for \"{query}\".")
            return
        await turn.content(f"Here is what I found for \"{query}\":\n\n")
        for i, item in enumerate(results, 1):
            await turn.content(f"{i}. **{item.get('title', '')}** - {item.get('snippet', '')} [S{i}]\n")
