"""
LLM Provider abstraction supporting Claude (Anthropic) and OpenAI.

Usage:
    from core.llm import create_llm_client, LLMProvider

    # Use Claude (default/recommended)
    client = create_llm_client(LLMProvider.ANTHROPIC, api_key="...")

    # Or use OpenAI
    client = create_llm_client(LLMProvider.OPENAI, api_key="...")

Both clients expose the OpenAI-compatible `client.chat.completions.create()`
used by the phase agents, and `client.stream()` used by the reasoning loop.
`stream()` yields StreamChunk objects: text deltas as they arrive, then one
final chunk carrying the tool calls the model requested (if any).
"""

import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


DEFAULT_MODELS = {
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    LLMProvider.OPENAI: "gpt-4-turbo-preview",
}


@dataclass
class ToolCallRequest:
    """A tool invocation requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_openai_format(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass
class StreamChunk:
    text: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    finish_reason: Optional[str] = None


@dataclass
class CompletionMessage:
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    role: str = "assistant"


@dataclass
class CompletionChoice:
    message: CompletionMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatCompletion:
    """The subset of an OpenAI chat completion the agents read."""
    choices: List[CompletionChoice]
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_text(cls, content: str, model: str = "") -> "ChatCompletion":
        return cls(choices=[CompletionChoice(CompletionMessage(content=content), "stop")], model=model)


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding malformed tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _claude_message(msg: Dict[str, Any]) -> Dict[str, Any]:
    """One OpenAI-style chat message as a Claude message."""
    role = msg.get("role", "user")
    content = msg.get("content", "")
    if role == "tool":
        # Tool results go back to Claude as user-side tool_result blocks
        return {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": msg.get("tool_call_id", "unknown"),
                "content": content if isinstance(content, str) else json.dumps(content),
            }],
        }
    if role == "assistant" and msg.get("tool_calls"):
        blocks: List[Dict[str, Any]] = [{"type": "text", "text": content}] if content else []
        for tc in msg["tool_calls"]:
            blocks.append({
                "type": "tool_use",
                "id": tc["id"],
                "name": tc["function"]["name"],
                "input": _parse_arguments(tc["function"]["arguments"]),
            })
        return {"role": "assistant", "content": blocks}
    return {"role": role, "content": content}


class AnthropicLLMClient:
    """Wrapper for Anthropic's Claude API with OpenAI-compatible interface."""

    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS[LLMProvider.ANTHROPIC], base_url: Optional[str] = None):
        from anthropic import AsyncAnthropic

        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        self.client = AsyncAnthropic(**kwargs)
        self.default_model = default_model
        self.chat = self  # For compatibility with OpenAI interface
        self.completions = self

    def _build_request(
        self,
        model: Optional[str],
        messages: Optional[List[Dict[str, Any]]],
        max_tokens: int,
        temperature: float,
        tools: Optional[List[Dict]],
    ) -> Dict[str, Any]:
        """Convert OpenAI-style messages and tools to a Claude request."""
        messages = messages or []
        system = "\n".join(m.get("content", "") for m in messages if m.get("role") == "system").strip()
        request: Dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [_claude_message(m) for m in messages if m.get("role") != "system"],
        }
        if system:
            request["system"] = system

        claude_tools = [
            {
                "name": tool["function"]["name"],
                "description": tool["function"].get("description", ""),
                "input_schema": tool["function"].get("parameters", {"type": "object", "properties": {}}),
            }
            for tool in tools or []
            if tool.get("type") == "function"
        ]
        if claude_tools:
            request["tools"] = claude_tools
        return request

    async def create(
        self,
        model: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        tools: Optional[List[Dict]] = None,
        **kwargs
    ) -> ChatCompletion:
        """Create a chat completion using Claude."""
        response = await self.client.messages.create(
            **self._build_request(model, messages, max_tokens, temperature, tools)
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        tool_calls = self._tool_calls(response.content)
        return ChatCompletion(
            choices=[CompletionChoice(CompletionMessage(text, tool_calls or None), response.stop_reason)],
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion: text deltas first, then requested tool calls."""
        request = self._build_request(model, messages, max_tokens, temperature, tools)
        async with self.client.messages.stream(**request) as stream:
            async for text in stream.text_stream:
                yield StreamChunk(text=text)
            final = await stream.get_final_message()
        yield StreamChunk(tool_calls=self._tool_calls(final.content) or None, finish_reason=final.stop_reason)

    @staticmethod
    def _tool_calls(blocks: List[Any]) -> List[ToolCallRequest]:
        return [
            ToolCallRequest(id=block.id, name=block.name, arguments=dict(block.input or {}))
            for block in blocks
            if getattr(block, "type", None) == "tool_use"
        ]


class OpenAILLMClient:
    """Wrapper for OpenAI API."""

    def __init__(self, api_key: str, default_model: str = DEFAULT_MODELS[LLMProvider.OPENAI]):
        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=api_key)
        self.default_model = default_model
        self.chat = self.client.chat
        self.completions = self.client.chat.completions

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion: text deltas first, then requested tool calls."""
        kwargs = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        # Tool call names and arguments arrive in fragments keyed by index.
        partial: Dict[int, Dict[str, str]] = {}
        finish_reason = None
        response = await self.client.chat.completions.create(**kwargs)
        async for chunk in response:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta.content:
                yield StreamChunk(text=delta.content)
            for tc in delta.tool_calls or []:
                entry = partial.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                if tc.id:
                    entry["id"] = tc.id
                if tc.function and tc.function.name:
                    entry["name"] += tc.function.name
                if tc.function and tc.function.arguments:
                    entry["arguments"] += tc.function.arguments
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        tool_calls = [
            ToolCallRequest(id=e["id"], name=e["name"], arguments=_parse_arguments(e["arguments"]))
            for _, e in sorted(partial.items())
        ]
        yield StreamChunk(tool_calls=tool_calls or None, finish_reason=finish_reason)


def create_llm_client(provider: LLMProvider, api_key: str, model: Optional[str] = None) -> Any:
    """
    Create an LLM client for `provider`.

    Returns:
        LLM client with OpenAI-compatible interface and `stream()`
    """
    if not api_key:
        raise ValueError(f"An API key is required for {provider.value}")
    if provider == LLMProvider.ANTHROPIC:
        # Always use the official Anthropic API, never a proxy from the environment
        return AnthropicLLMClient(
            api_key=api_key,
            default_model=model or get_default_model(provider),
            base_url="https://api.anthropic.com",
        )
    if provider == LLMProvider.OPENAI:
        return OpenAILLMClient(api_key=api_key, default_model=model or get_default_model(provider))
    raise ValueError(f"Unknown provider: {provider}")


def create_available_clients(
    anthropic_api_key: Optional[str] = None,
    openai_api_key: Optional[str] = None,
    model: Optional[str] = None,
    preferred: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build one client per provider that has an API key, keyed by provider
    name. The preferred provider comes first and gets `model`.
    """
    clients: Dict[str, Any] = {}
    keys = {
        LLMProvider.ANTHROPIC: anthropic_api_key,
        LLMProvider.OPENAI: openai_api_key,
    }
    for provider, key in keys.items():
        if not key:
            continue
        provider_model = model if provider.value == preferred else None
        clients[provider.value] = create_llm_client(provider, api_key=key, model=provider_model)
    if preferred in clients:
        clients = {preferred: clients[preferred], **{k: v for k, v in clients.items() if k != preferred}}
    logger.info("LLM providers available: %s", ", ".join(clients) or "none")
    return clients


def get_default_model(provider: LLMProvider) -> str:
    """Get the default model for a provider."""
    return DEFAULT_MODELS.get(provider, DEFAULT_MODELS[LLMProvider.ANTHROPIC])
