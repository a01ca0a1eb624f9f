#!/usr/bin/env python3
"""
Demo script for the Account Research Orchestrator.

Runs the multi-agent workflow (or one chat turn) without the API server and
prints the event stream as it arrives.

Usage:
    python demo.py "Acme Corp"
    python demo.py --mock "Acme Corp"
    python demo.py --chat "Generate an account plan for Acme Corp"
"""

import argparse
import asyncio
import json
import os
import re
import sys
from datetime import datetime
from pathlib import Path

# Add paths
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv

# Check parent directory first (project root)
parent_env = Path(__file__).parent.parent / ".env"
if parent_env.exists():
    load_dotenv(parent_env)
else:
    load_dotenv()


class MockLLMClient:
    """Mock LLM client for demo without API keys."""

    default_model = "mock-model"

    class ChatCompletions:
        async def create(self, **kwargs):
            from core.llm import ChatCompletion

            messages = kwargs.get("messages", [])
            system_msg = next((m["content"] for m in messages if m["role"] == "system"), "")
            user_msg = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
            company = re.search(r"Company: (.+)", user_msg)
            company = company.group(1).strip() if company else "the company"

            # Simulate different agent responses based on system prompt
            if "Writing Agent" in system_msg:
                document = (
                    f"# Account Plan: {company}\n\n"
                    f"## Overview\n{company} is an established provider in its market [S1].\n\n"
                    "## Opportunities\n- Expand the existing relationship into adjacent teams [S2]\n\n"
                    "## Recommended Actions\n- Schedule a discovery call with the platform team"
                )
                response = json.dumps({"title": f"Account Plan: {company}", "document": document, "word_count": len(document.split())})
            elif "Quality Agent" in system_msg:
                response = json.dumps({"quality_score": 82, "coverage": 0.9, "average_confidence": 0.74, "improvements": []})
            elif "Validation Agent" in system_msg:
                response = json.dumps({"issues": [], "unsupported_claims": [], "is_valid": True})
            else:
                role = re.search(r"You are an? ([A-Za-z ]+Agent)", system_msg)
                response = json.dumps({
                    "summary": f"{role.group(1) if role else 'Agent'} findings for {company}.",
                    "key_points": ["Steady growth in core business", "Active hiring in engineering"],
                    "confidence": 0.75,
                })

            return ChatCompletion.from_text(response, model=kwargs.get("model") or "mock-model")

    def __init__(self):
        self.chat = type('Chat', (), {'completions': self.ChatCompletions()})()

    async def stream(self, messages, tools=None, **kwargs):
        from core.llm import StreamChunk

        user_msg = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        for word in f"Here is a short answer to: {user_msg[:80]}".split(" "):
            yield StreamChunk(text=word + " ")
        yield StreamChunk(finish_reason="stop")


def print_event(event) -> None:
    data = event.to_dict()["data"]
    kind = event.type.value
    if kind == "content":
        print(data, end="", flush=True)
    elif kind == "workflow-update":
        detail = data.get("phase") or data.get("message") or data.get("error") or ""
        print(f"\n   [{data['type']}] {detail}")
    elif kind == "tool-call":
        print(f"   🔧 {data.get('agentName', 'assistant')}: {data['name']} ({data['status']})")
    elif kind == "agent-update":
        print(f"   🤖 {data}")
    elif kind == "done":
        print(f"\n\n✅ Done ({len(data['sources'])} sources)")


async def run_demo(target: str, use_mock: bool = False, chat: bool = False):
    """Run the orchestrator demo."""
    from agents import AgentOrchestrator, ReasoningAgent
    from config import config, configure_logging
    from core.events import EventType, StreamEvent
    from core.llm import create_available_clients
    from tools import create_default_registry

    configure_logging("WARNING")

    print("\n" + "=" * 60)
    print("🔬 ACCOUNT RESEARCH ORCHESTRATOR DEMO")
    print("=" * 60)
    print(f"\n📝 {'Message' if chat else 'Company'}: {target}\n")

    if use_mock or not config.validate():
        print("ℹ️  Using mock LLM client (no API key found)\n")
        llm_clients = {"mock": MockLLMClient()}
        tavily_client = None
    else:
        llm_clients = create_available_clients(
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            model=config.llm_model,
            preferred=config.llm_provider,
        )
        print(f"✅ Using {', '.join(llm_clients)} as LLM provider\n")
        tavily_client = None
        if os.getenv("TAVILY_API_KEY"):
            from tavily import TavilyClient
            tavily_client = TavilyClient(api_key=os.getenv("TAVILY_API_KEY"))

    options = config.orchestrator_options()
    registry = create_default_registry(tavily_client, options)
    orchestrator = AgentOrchestrator(
        options=options,
        tool_registry=registry,
        llm_client=next(iter(llm_clients.values())),
    )
    print(f"🤖 {len(orchestrator.get_all_agents())} agents ready\n")

    start_time = datetime.now()
    if chat:
        agent = ReasoningAgent(llm_clients, tool_registry=registry, orchestrator=orchestrator, options=options)
        async for event in agent.process_message(target):
            print_event(event)
    else:
        async for update in orchestrator.run(target, []):
            print_event(StreamEvent(EventType.WORKFLOW_UPDATE, update))
            if update.type.value == "workflow-complete":
                print(f"\n   Failed agents: {update.summary['failedAgents'] or 'none'}")

    elapsed = (datetime.now() - start_time).total_seconds()
    print(f"\n⏱️  Finished in {elapsed:.1f}s\n")

    print("📈 Agent stats:")
    for name, stats in orchestrator.get_agent_stats().items():
        if stats.total:
            print(f"   {name:<12} {stats.success_rate * 100:5.0f}%  avg {stats.average_execution_time:.0f}ms")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60 + "\n")


def main():
    parser = argparse.ArgumentParser(description="Account Research Orchestrator Demo")
    parser.add_argument("target", nargs="?", default="Acme Corp",
                        help="Company to research (or chat message with --chat)")
    parser.add_argument("--mock", action="store_true", help="Use mock LLM (no API key needed)")
    parser.add_argument("--chat", action="store_true", help="Send the text through the chat reasoning loop")
    args = parser.parse_args()

    asyncio.run(run_demo(args.target, args.mock, args.chat))


if __name__ == "__main__":
    main()
