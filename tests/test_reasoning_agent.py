import asyncio

import pytest

from agents.orchestrator import AgentOrchestrator
from agents.reasoning_agent import ReasoningAgent, detect_workflow_intent, extract_company_name, render_report
from config import OrchestratorOptions
from core.events import EventType
from core.llm import StreamChunk, ToolCallRequest

from conftest import ScriptedAgent, ScriptedLLM, make_agents


async def drain(agent, text, **kwargs):
    return [event async for event in agent.process_message(text, **kwargs)]


def content_of(events):
    return "".join(e.data for e in events if e.type == EventType.CONTENT)


def assert_single_done(events):
    done = [e for e in events if e.type == EventType.DONE]
    assert len(done) == 1
    assert events[-1] is done[0]
    assert events[-2].type == EventType.FINAL_ANSWER
    assert events[-2].data == done[0].data.content
    assert content_of(events) == done[0].data.content
    return done[0].data


def answer(*parts):
    return [StreamChunk(text=p) for p in parts] + [StreamChunk(finish_reason="stop")]


def search_request(call_id="call-1", query="Initech"):
    return [StreamChunk(tool_calls=[ToolCallRequest(id=call_id, name="web_search", arguments={"query": query})])]


class TestCompanyExtraction:
    @pytest.mark.parametrize("message,expected", [
        ("Research Acme Corp", "Acme Corp"),
        ("Generate an account plan for Globex", "Globex"),
        ("Tell me about Stark Industries", "Stark Industries"),
        ("What is Initech Inc known for?", "Initech"),
        ("Hyperion", "Hyperion"),
        ("hello there", None),
        ("Please research this for me", None),
    ])
    def test_extract_company_name(self, message, expected):
        assert extract_company_name(message) == expected

    def test_workflow_intent(self):
        assert detect_workflow_intent("Generate a COMPREHENSIVE report")
        assert detect_workflow_intent("research Acme")
        assert not detect_workflow_intent("What does Initech sell?")


class TestReactLoop:
    @pytest.mark.asyncio
    async def test_streamed_content_matches_done_message(self, fast_options, registry):
        llm = ScriptedLLM([answer("Initech ", "sells ", "staplers.")])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        assert message.content == "Initech sells staplers."
        assert [e.data for e in events if e.type == EventType.CONTENT] == ["Initech ", "sells ", "staplers."]
        assert [m.role for m in agent.history] == ["user", "assistant"]
        agent.clear_history()
        assert agent.history == []

    @pytest.mark.asyncio
    async def test_tool_call_round_trip(self, fast_options, registry):
        llm = ScriptedLLM([search_request(), answer("Found it [S1].")])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        tool_events = [e.data for e in events if e.type == EventType.TOOL_CALL]
        assert [t["status"] for t in tool_events] == ["in-progress", "success"]
        assert {t["id"] for t in tool_events} == {"call-1"}
        assert any(e.type == EventType.SOURCES for e in events)
        assert message.sources
        assert message.content == "Found it [S1]."

        observation = llm.requests[1][-1]
        assert observation["role"] == "tool"
        assert observation["tool_call_id"] == "call-1"

    @pytest.mark.asyncio
    async def test_sources_are_not_repeated(self, fast_options, registry):
        llm = ScriptedLLM([search_request("c1"), search_request("c2"), answer("done")])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        urls = [s["url"] for e in events if e.type == EventType.SOURCES for s in e.data]
        assert len(urls) == len(set(urls))
        assert len(message.sources) == len(urls)

    @pytest.mark.asyncio
    async def test_iteration_cap(self, registry):
        options = OrchestratorOptions(max_iterations=2)
        llm = ScriptedLLM([search_request()])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        assert len(llm.requests) == 2
        assert "Maximum iterations reached" in message.content
        assert any(e.type == EventType.LOG and e.data["level"] == "warning" for e in events)

    @pytest.mark.asyncio
    async def test_provider_fallback(self, fast_options, registry):
        broken = ScriptedLLM([], fail=True)
        good = ScriptedLLM([answer("From the backup.")])
        agent = ReasoningAgent({"broken": broken, "good": good}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        assert message.content == "From the backup."
        assert any(e.type == EventType.LOG and "broken" in e.data["message"] for e in events)

    @pytest.mark.asyncio
    async def test_all_providers_failing_still_ends_with_done(self, fast_options, registry):
        agent = ReasoningAgent({"broken": ScriptedLLM([], fail=True)}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        assert message.content.startswith("I encountered an error")

    @pytest.mark.asyncio
    async def test_provider_prefs(self, fast_options, registry):
        first = ScriptedLLM([answer("first")])
        second = ScriptedLLM([answer("second")])
        agent = ReasoningAgent({"first": first, "second": second}, tool_registry=registry, options=fast_options)

        events = await drain(
            agent, "What does Initech sell?",
            provider_prefs={"order": ["second", "unknown"], "enabled": {"first": False}},
        )

        assert assert_single_done(events).content == "second"
        assert first.requests == []
        assert agent.provider_order == ["second"]

    @pytest.mark.asyncio
    async def test_malformed_provider_prefs_are_ignored(self, fast_options, registry):
        llm = ScriptedLLM([answer("still works")])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?", provider_prefs=["not", "a", "dict"])

        assert assert_single_done(events).content == "still works"
        assert any(e.type == EventType.LOG and e.data["level"] == "warning" for e in events)


class TestWithoutModel:
    @pytest.mark.asyncio
    async def test_offline_answer_from_search(self, fast_options, registry):
        agent = ReasoningAgent({}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "What does Initech sell?")

        message = assert_single_done(events)
        assert message.content.startswith('Here is what I found for "What does Initech sell?"')
        assert "[S1]" in message.content
        assert [e.data["status"] for e in events if e.type == EventType.TOOL_CALL] == ["in-progress", "success"]

    @pytest.mark.asyncio
    async def test_empty_message(self, fast_options, registry):
        agent = ReasoningAgent({}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "   ")

        assert "which company" in assert_single_done(events).content
        assert agent.history == []

    @pytest.mark.asyncio
    async def test_history_always_opens_with_user_turn(self, fast_options, registry):
        llm = ScriptedLLM([answer("one"), answer("two"), answer("three")])
        agent = ReasoningAgent({"scripted": llm}, tool_registry=registry, options=fast_options, history_limit=3)

        await drain(agent, "What does Initech sell?")
        await drain(agent, "")
        await drain(agent, "Who runs Initech?")

        assert [m.role for m in agent.history] == ["user", "assistant"]
        assert agent.history[0].content == "Who runs Initech?"
        assert [m["role"] for m in llm.requests[-1]][:2] == ["system", "user"]


class TestDelegation:
    @pytest.mark.asyncio
    async def test_research_request_runs_workflow(self, fast_options, registry):
        orchestrator = AgentOrchestrator(make_agents(), options=fast_options, tool_registry=registry)
        agent = ReasoningAgent({}, orchestrator=orchestrator, options=fast_options)

        events = await drain(agent, "Research Acme Corp")

        message = assert_single_done(events)
        updates = [e.data.type.value for e in events if e.type == EventType.WORKFLOW_UPDATE]
        assert updates[0] == "workflow-start"
        assert updates[-1] == "workflow-complete"
        assert updates.count("phase-start") == 4
        assert any(e.type == EventType.AGENT_UPDATE for e in events)
        assert "# Comprehensive Research Report: Acme Corp" in message.content
        assert agent.current_company == "Acme Corp"

    @pytest.mark.asyncio
    async def test_follow_up_uses_current_company(self, fast_options, registry):
        research = ScriptedAgent("research")
        orchestrator = AgentOrchestrator(make_agents(research=research), options=fast_options, tool_registry=registry)
        agent = ReasoningAgent({}, orchestrator=orchestrator, options=fast_options)

        await drain(agent, "Research Acme Corp")
        await drain(agent, "Generate a full account plan")

        assert research.calls == 2
        assert research.inputs[-1]["company_name"] == "Acme Corp"

    @pytest.mark.asyncio
    async def test_research_request_without_company(self, fast_options, registry):
        agent = ReasoningAgent({}, tool_registry=registry, options=fast_options)

        events = await drain(agent, "Please research this for me")

        message = assert_single_done(events)
        assert "Please specify which company" in message.content
        assert not any(e.type == EventType.WORKFLOW_UPDATE for e in events)

    @pytest.mark.asyncio
    async def test_workflow_error_is_reported(self, fast_options, registry):
        failing = {name: ScriptedAgent(name, behaviour="fail") for name in ("synthesis", "strategy", "writing")}
        orchestrator = AgentOrchestrator(make_agents(**failing), options=fast_options, tool_registry=registry)
        agent = ReasoningAgent({}, orchestrator=orchestrator, options=fast_options)

        events = await drain(agent, "Research Acme Corp")

        message = assert_single_done(events)
        updates = [e.data.type.value for e in events if e.type == EventType.WORKFLOW_UPDATE]
        assert updates[-1] == "workflow-error"
        assert "stopped during synthesis" in message.content

    @pytest.mark.asyncio
    async def test_closing_chat_stream_cancels_workflow(self, fast_options, registry):
        orchestrator = AgentOrchestrator(
            make_agents(research=ScriptedAgent("research", delay=10.0)),
            options=fast_options,
            tool_registry=registry,
        )
        agent = ReasoningAgent({}, orchestrator=orchestrator, options=fast_options)

        stream = agent.process_message("Research Acme Corp")
        async for event in stream:
            if event.type == EventType.WORKFLOW_UPDATE and event.data.type.value == "phase-start":
                break
        await asyncio.sleep(0.05)
        await stream.aclose()

        assert orchestrator.get_active_tasks() == []


class TestReport:
    def test_partial_results_are_flagged(self):
        summary = {
            "phases": [{"name": "initial-research", "results": {
                "research": {"overview": "Acme builds anvils."},
                "news": {"error": "timeout", "agentName": "news"},
            }}],
            "failedAgents": ["news"],
        }

        report = render_report("Acme", summary)

        assert "**research**: Acme builds anvils." in report
        assert "unavailable (timeout)" in report
        assert "_Partial results: news did not complete._" in report

    def test_prefers_written_document(self):
        summary = {
            "phases": [{"name": "synthesis", "results": {"writing": {"document": "# Account Plan: Acme\n"}}}],
            "failedAgents": [],
        }
        assert render_report("Acme", summary) == "# Account Plan: Acme\n"
