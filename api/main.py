import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from agents.reasoning_agent import ReasoningAgent
from config import OrchestratorOptions, config, configure_logging
from core.events import (
    HEARTBEAT_FRAME,
    ChannelClosed,
    EventChannel,
    EventType,
    StreamEvent,
    TaskEvent,
    TaskEventType,
    stream_from,
)
from core.llm import create_available_clients
from core.tools import ToolRegistry
from storage.sessions import SessionStore
from tools import create_default_registry

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

tavily_client = None


def get_tavily_client():
    global tavily_client
    tavily_key = os.getenv("TAVILY_API_KEY")
    if tavily_client is None and tavily_key:
        from tavily import TavilyClient
        tavily_client = TavilyClient(api_key=tavily_key)
    return tavily_client


# Request Models
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="The user's chat message")
    session_id: Optional[str] = Field(default=None, description="Session identifier")
    research_goals: List[str] = Field(default_factory=list, description="Goals passed to the research workflow")
    provider_prefs: Optional[Dict[str, Any]] = Field(
        default=None, description='LLM provider preferences, e.g. {"order": ["openai"], "enabled": {"anthropic": false}}'
    )


class ResearchRequest(BaseModel):
    company_name: str = Field(..., min_length=1, description="Company to research")
    research_goals: List[str] = Field(default_factory=list, description="Specific research goals")
    session_id: Optional[str] = Field(default=None, description="Session identifier")


class ToolExecuteRequest(BaseModel):
    tool_name: str = Field(..., description="Registered tool name")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Tool parameters")


class ToolBatchRequest(BaseModel):
    calls: List[ToolExecuteRequest] = Field(..., description="Tool calls to run concurrently")


def create_app(
    llm_clients: Optional[Dict[str, Any]] = None,
    tool_registry: Optional[ToolRegistry] = None,
    options: Optional[OrchestratorOptions] = None,
    max_sessions: Optional[int] = None,
    eviction: Optional[str] = None,
) -> FastAPI:
    """
    Build the API app.

    Anything not passed in comes from the environment configuration; tests
    pass their own clients and registry.
    """
    options = options or config.orchestrator_options()
    if llm_clients is None:
        llm_clients = create_available_clients(
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            model=config.llm_model,
            preferred=config.llm_provider,
        )
    if tool_registry is None:
        tool_registry = create_default_registry(get_tavily_client(), options)

    def new_session(session_id: str) -> ReasoningAgent:
        logger.info("Creating session %s", session_id)
        return ReasoningAgent(llm_clients=llm_clients, tool_registry=tool_registry, options=options)

    sessions: SessionStore[ReasoningAgent] = SessionStore(
        new_session,
        max_sessions=max_sessions or config.max_sessions,
        eviction=eviction or config.session_eviction,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Account Research Orchestrator API starting (providers: %s)", ", ".join(llm_clients) or "none")
        yield
        logger.info("Account Research Orchestrator API shutting down")

    app = FastAPI(
        title="Account Research Orchestrator",
        description="""
        Multi-agent company research with live streaming:
        - **Workflow**: initial research, deep analysis, synthesis and quality assurance phases
        - **Chat**: reasoning loop that calls tools and delegates research requests to the workflow
        - **Tools**: validated, rate-limited search and calculator tools

        Streams are Server-Sent Events of `{type, data}` records.
        """,
        version="2.0.0",
        lifespan=lifespan,
    )
    app.state.sessions = sessions
    app.state.tool_registry = tool_registry
    app.state.llm_clients = llm_clients

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    async def sse(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
        yield HEARTBEAT_FRAME
        try:
            async for event in events:
                yield event.to_sse()
        finally:
            await events.aclose()

    @app.get("/")
    async def root():
        return {
            "name": "Account Research Orchestrator",
            "version": "2.0.0",
            "status": "running",
            "endpoints": ["/chat", "/research", "/agents", "/agents/stats", "/tools", "/sessions", "/health"],
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "llm_providers": list(llm_clients),
            "tavily_configured": bool(config.tavily_api_key),
            "sessions": len(sessions),
        }

    @app.post("/chat")
    async def chat(request: ChatRequest):
        """Stream reasoning events for one chat message."""
        session_id = request.session_id or str(uuid.uuid4())
        agent = sessions.get_or_create(session_id)
        events = agent.process_message(
            request.message,
            provider_prefs=request.provider_prefs,
            research_goals=request.research_goals,
        )
        return StreamingResponse(
            sse(events),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Session-Id": session_id},
        )

    @app.post("/research")
    async def research(request: ResearchRequest):
        """Stream workflow updates for a full research run."""
        session_id = request.session_id or str(uuid.uuid4())
        orchestrator = sessions.get_or_create(session_id).get_orchestrator()

        channel = EventChannel(
            options.channel_size,
            terminal=lambda e: e.type == EventType.WORKFLOW_UPDATE and e.data.is_terminal,
        )

        async def on_task_event(event: TaskEvent) -> None:
            if channel.closed:
                return
            if event.type == TaskEventType.TOOL_CALL:
                await channel.send(StreamEvent(
                    EventType.TOOL_CALL, {**event.data, "agentName": event.agent_name, "phase": event.phase}
                ))
            else:
                await channel.send(StreamEvent(
                    EventType.AGENT_UPDATE, {"agentName": event.agent_name, "phase": event.phase, **event.data}
                ))

        async def produce() -> None:
            run = orchestrator.run(request.company_name, request.research_goals, listener=on_task_event)
            try:
                async for update in run:
                    await channel.send(StreamEvent(EventType.WORKFLOW_UPDATE, update))
            except ChannelClosed:
                logger.info("Research consumer for session %s disconnected", session_id)
            finally:
                await run.aclose()
                await channel.close()

        producer = asyncio.create_task(produce())

        return StreamingResponse(
            sse(stream_from(channel, producer)),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Session-Id": session_id},
        )

    @app.get("/agents")
    async def list_agents(session_id: str = Query(DEFAULT_SESSION)):
        orchestrator = sessions.get_or_create(session_id).get_orchestrator()
        return {
            "agents": [d.to_dict() for d in orchestrator.get_all_agents()],
            "phases": [{"name": name.value, "agents": agents} for name, agents in orchestrator.phase_plan],
        }

    @app.get("/agents/stats")
    async def agent_stats(session_id: str = Query(DEFAULT_SESSION)):
        orchestrator = sessions.get_or_create(session_id).get_orchestrator()
        return {
            "stats": {name: s.to_dict() for name, s in orchestrator.get_agent_stats().items()},
            "activeTasks": orchestrator.get_active_tasks(),
        }

    @app.get("/tools")
    async def list_tools(format: str = Query("list", description="list, llm, openai or statistics")):
        try:
            return {"format": format, "tools": tool_registry.list_tools(format)}
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/tools/execute")
    async def execute_tool(request: ToolExecuteRequest):
        call = await tool_registry.execute(request.tool_name, request.parameters)
        return call.to_dict()

    @app.post("/tools/batch")
    async def execute_batch(request: ToolBatchRequest):
        calls = await tool_registry.execute_batch(
            [{"tool_name": c.tool_name, "parameters": c.parameters} for c in request.calls]
        )
        return {"results": [c.to_dict() for c in calls]}

    @app.get("/sessions")
    async def list_sessions():
        return {**sessions.stats(), "sessionIds": sessions.session_ids()}

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        if not sessions.remove(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return {"status": "deleted", "session_id": session_id}

    return app


configure_logging()
app = create_app()


# Run with: uvicorn api.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.api_host, port=config.api_port)
