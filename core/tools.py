"""
Tool Registry - validates and executes named external capabilities.

Every outbound capability an agent can reach (search, scrape, quote lookup,
calculators) is registered here as a Tool. The registry validates the tool
name and parameters before dispatch, applies per-tool timeout, retry and
rate-limit policies, and keeps per-tool statistics in the same shape as the
agent statistics.
"""

from typing import Any, Optional, Callable, Dict, List, Type
from collections import OrderedDict, deque
from dataclasses import dataclass
import asyncio
import copy
import inspect
import json
import logging
import time

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .stats import StatsAggregator
from .types import ToolCall, ToolCallStatus

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How a failing tool is retried."""
    max_retries: int = 0
    backoff: str = "exponential"  # "exponential", "linear" or "fixed"
    initial_delay: float = 1.0
    max_delay: Optional[float] = None

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        if self.backoff == "exponential":
            delay = self.initial_delay * (2 ** attempt)
        elif self.backoff == "linear":
            delay = self.initial_delay * (attempt + 1)
        else:
            delay = self.initial_delay
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


@dataclass
class RateLimit:
    """Sliding-window call limit."""
    max_calls: int
    window_seconds: float


class ToolValidationError(Exception):
    """Parameters do not satisfy the tool's declared schema."""


class Tool:
    """A tool that can be used by agents."""

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable,
        schema: Optional[Type[BaseModel]] = None,
        parameters: Optional[Dict[str, Any]] = None,
        category: str = "api",
        retry_policy: Optional[RetryPolicy] = None,
        rate_limit: Optional[RateLimit] = None,
        cacheable: bool = False,
    ):
        self.name = name
        self.description = description
        self.func = func
        self.schema = schema
        self.category = category
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limit = rate_limit
        self.cacheable = cacheable
        if parameters is not None:
            self.parameters = parameters
        elif schema is not None:
            self.parameters = schema.model_json_schema()
        else:
            self.parameters = self._extract_parameters(func)

    def _extract_parameters(self, func: Callable) -> Dict[str, Any]:
        """Extract parameters from function signature."""
        sig = inspect.signature(func)
        properties = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param_name == 'self':
                continue

            param_type = "string"
            if param.annotation != inspect.Parameter.empty:
                type_map = {
                    str: "string",
                    int: "integer",
                    float: "number",
                    bool: "boolean",
                    list: "array",
                    dict: "object",
                }
                param_type = type_map.get(param.annotation, "string")

            properties[param_name] = {
                "type": param_type,
                "description": f"The {param_name} parameter"
            }

            if param.default == inspect.Parameter.empty:
                required.append(param_name)

        return {
            "type": "object",
            "properties": properties,
            "required": required
        }

    def validate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return validated keyword arguments or raise ToolValidationError."""
        if not isinstance(params, dict):
            raise ToolValidationError("parameters must be an object")
        if self.schema is not None:
            try:
                return self.schema.model_validate(params).model_dump()
            except PydanticValidationError as e:
                raise ToolValidationError(str(e)) from e
        try:
            inspect.signature(self.func).bind(**params)
        except TypeError as e:
            raise ToolValidationError(str(e)) from e
        return dict(params)

    async def invoke(self, arguments: Dict[str, Any]) -> Any:
        """Call the underlying function with already-validated arguments."""
        result = self.func(**arguments)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, dict) and result.get("success") is False:
            raise RuntimeError(result.get("error") or f"{self.name} reported failure")
        return result

    def metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "parameters": self.parameters,
            "cacheable": self.cacheable,
        }

    def to_llm_format(self) -> Dict[str, Any]:
        """Generic function-calling schema."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": self.to_llm_format(),
        }


class ToolRegistry:
    """Registry for managing and executing tools available to agents."""

    def __init__(
        self,
        default_timeout: float = 30.0,
        enable_cache: bool = False,
        cache_ttl_seconds: float = 3600.0,
        cache_max_entries: int = 1000,
        history_size: int = 100,
    ):
        if cache_max_entries <= 0:
            raise ValueError(f"cache_max_entries must be positive, got {cache_max_entries}")
        self.default_timeout = default_timeout
        self.enable_cache = enable_cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_max_entries = cache_max_entries
        self._tools: Dict[str, Tool] = {}
        self._calls: Dict[str, deque] = {}
        # key -> (stored_at, result); oldest first
        self._cache: "OrderedDict[str, tuple]" = OrderedDict()
        self._history: deque = deque(maxlen=history_size)
        self._stats = StatsAggregator()

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            logger.warning("Tool '%s' already registered, overwriting", tool.name)
        self._tools[tool.name] = tool
        if tool.rate_limit:
            self._calls[tool.name] = deque()

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self, format: str = "list") -> Any:
        """
        List registered tools.

        Args:
            format: "list" (metadata), "llm" (generic function-calling schema),
                "openai" (OpenAI tools format) or "statistics".
        """
        if format == "list":
            return [tool.metadata() for tool in self._tools.values()]
        if format == "llm":
            return [tool.to_llm_format() for tool in self._tools.values()]
        if format == "openai":
            return self.to_openai_format()
        if format == "statistics":
            return self.get_statistics()
        raise ValueError(f"Unknown tool listing format: {format}")

    def get_tools_by_category(self, category: str) -> List[Tool]:
        return [t for t in self._tools.values() if t.category == category]

    def to_openai_format(self) -> List[Dict[str, Any]]:
        """Convert all tools to OpenAI format."""
        return [tool.to_openai_format() for tool in self._tools.values()]

    def get_statistics(self) -> Dict[str, Any]:
        """Per-tool invocation statistics plus totals."""
        per_tool = {}
        total = 0
        succeeded = 0
        for stats in self._stats.snapshot():
            per_tool[stats.name] = {
                "invocationCount": stats.total,
                "successRate": stats.success_rate,
                "avgLatency": stats.average_execution_time,
            }
            total += stats.total
            succeeded += stats.tasks_completed
        return {
            "tools": per_tool,
            "totalExecutions": total,
            "successRate": succeeded / total if total else 0.0,
        }

    def get_history(self, limit: int = 100) -> List[ToolCall]:
        return list(self._history)[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    def _check_rate_limit(self, tool: Tool) -> bool:
        if not tool.rate_limit:
            return True
        now = time.monotonic()
        calls = self._calls[tool.name]
        while calls and now - calls[0] >= tool.rate_limit.window_seconds:
            calls.popleft()
        if len(calls) >= tool.rate_limit.max_calls:
            return False
        calls.append(now)
        return True

    def _cache_key(self, name: str, arguments: Dict[str, Any]) -> str:
        return f"{name}:{json.dumps(arguments, sort_keys=True, default=str)}"

    def _is_expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at > self.cache_ttl_seconds

    def _cache_get(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._is_expired(entry[0], time.monotonic()):
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return entry

    def _cache_set(self, key: str, value: Any) -> None:
        now = time.monotonic()
        expired = [k for k, (stored_at, _) in self._cache.items() if self._is_expired(stored_at, now)]
        for k in expired:
            del self._cache[k]
        self._cache.pop(key, None)
        while len(self._cache) >= self.cache_max_entries:
            self._cache.popitem(last=False)
        self._cache[key] = (now, copy.deepcopy(value))

    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _fail(self, call: ToolCall, kind: str, message: str) -> ToolCall:
        call.status = ToolCallStatus.ERROR
        call.error = message
        call.error_kind = kind
        call.duration_ms = call.duration_ms or 0.0
        # Unknown names have no tool to attribute the failure to
        if kind != "not_found":
            self._stats.record(call.name, call.duration_ms, False, message)
        self._history.append(call)
        return call

    async def execute(
        self,
        tool_name: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        call: Optional[ToolCall] = None,
    ) -> ToolCall:
        """
        Execute a tool by name.

        Never raises for tool failures: unknown names, invalid parameters,
        rate limiting, timeouts and execution errors all come back as a
        ToolCall with status ERROR. Name and parameter checks happen before
        any outbound call is made.
        """
        parameters = parameters if parameters is not None else {}
        call = call or ToolCall(name=tool_name, input=parameters)

        tool = self.get(tool_name)
        if not tool:
            return self._fail(call, "not_found", f"Tool not found: {tool_name}")

        try:
            arguments = tool.validate(parameters)
        except ToolValidationError as e:
            return self._fail(call, "validation", f"Invalid parameters for {tool_name}: {e}")

        cache_key = None
        if self.enable_cache and tool.cacheable:
            cache_key = self._cache_key(tool_name, arguments)
            hit = self._cache_get(cache_key)
            if hit is not None:
                call.status = ToolCallStatus.SUCCESS
                call.result = copy.deepcopy(hit[1])
                call.cached = True
                call.duration_ms = 0.0
                self._stats.record(tool_name, call.duration_ms, True)
                self._history.append(call)
                return call

        if not self._check_rate_limit(tool):
            return self._fail(call, "rate_limited", f"Rate limit exceeded for {tool_name}")

        call.status = ToolCallStatus.IN_PROGRESS
        timeout = timeout or self.default_timeout
        policy = tool.retry_policy
        start = time.monotonic()
        logger.debug("Dispatching tool %s", tool_name)

        for attempt in range(policy.max_retries + 1):
            call.retry_count = attempt
            try:
                call.result = await asyncio.wait_for(tool.invoke(arguments), timeout=timeout)
                call.status = ToolCallStatus.SUCCESS
                break
            except asyncio.TimeoutError:
                call.error = f"Tool execution timeout after {timeout}s"
                call.error_kind = "timeout"
            except Exception as e:
                call.error = str(e) or e.__class__.__name__
                call.error_kind = "execution"

            if attempt < policy.max_retries:
                delay = policy.delay_for(attempt)
                logger.info(
                    "Tool %s failed (attempt %d/%d), retrying in %.2fs",
                    tool_name, attempt + 1, policy.max_retries + 1, delay,
                )
                await asyncio.sleep(delay)

        call.duration_ms = (time.monotonic() - start) * 1000
        if call.status == ToolCallStatus.SUCCESS:
            call.error = None
            call.error_kind = None
            if cache_key is not None:
                self._cache_set(cache_key, call.result)
        else:
            call.status = ToolCallStatus.ERROR
            logger.warning("Tool %s failed: %s", tool_name, call.error)

        self._stats.record(tool_name, call.duration_ms, call.success, call.error)
        self._history.append(call)
        return call

    async def execute_batch(
        self,
        calls: List[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> List[ToolCall]:
        """
        Execute several tool calls concurrently.

        Each entry is `{"tool_name": ..., "parameters": {...}}` (`name` and
        `params` are accepted too). Results come back in input order.
        """
        coros = [
            self.execute(
                c.get("tool_name") or c.get("toolName") or c.get("name", ""),
                c.get("parameters", c.get("params", {})),
                timeout=timeout,
            )
            for c in calls
        ]
        return list(await asyncio.gather(*coros))
