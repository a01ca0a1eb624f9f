import asyncio

import pytest
from pydantic import BaseModel

from core.tools import RateLimit, RetryPolicy, Tool, ToolRegistry
from core.types import ToolCallStatus
from tools.calculator import safe_eval


class EchoParams(BaseModel):
    text: str
    delay: float = 0.0


def make_registry(**kwargs):
    """Registry with a spy `echo` tool; returns (registry, invocations)."""
    invocations = []

    async def echo(text: str, delay: float = 0.0):
        invocations.append(text)
        if delay:
            await asyncio.sleep(delay)
        return {"success": True, "echo": text}

    registry = ToolRegistry(**kwargs)
    registry.register(Tool(name="echo", description="Echo text back", func=echo, schema=EchoParams, cacheable=True))
    return registry, invocations


class TestToolRegistry:
    @pytest.mark.asyncio
    async def test_unknown_tool_makes_no_outbound_call(self):
        registry, invocations = make_registry()

        call = await registry.execute("doesNotExist", {"text": "hi"})

        assert call.status == ToolCallStatus.ERROR
        assert call.error_kind == "not_found"
        assert "doesNotExist" in call.error
        assert invocations == []
        assert registry.get_statistics()["totalExecutions"] == 0
        assert registry.get_history()[-1] is call

    @pytest.mark.asyncio
    async def test_invalid_parameters_are_rejected_before_dispatch(self):
        registry, invocations = make_registry()

        call = await registry.execute("echo", {"delay": 0})

        assert call.status == ToolCallStatus.ERROR
        assert call.error_kind == "validation"
        assert invocations == []

    @pytest.mark.asyncio
    async def test_signature_validation_without_schema(self):
        registry = ToolRegistry()
        registry.register(Tool(name="add", description="Add two numbers", func=lambda a, b: a + b))

        ok = await registry.execute("add", {"a": 2, "b": 3})
        bad = await registry.execute("add", {"a": 2, "c": 3})

        assert ok.success and ok.result == 5
        assert bad.error_kind == "validation"

    @pytest.mark.asyncio
    async def test_batch_results_keep_input_order(self):
        registry, _ = make_registry()

        calls = await registry.execute_batch([
            {"tool_name": "echo", "parameters": {"text": "slow", "delay": 0.05}},
            {"tool_name": "missing", "parameters": {}},
            {"name": "echo", "params": {"text": "fast"}},
        ])

        assert [c.name for c in calls] == ["echo", "missing", "echo"]
        assert calls[0].result["echo"] == "slow"
        assert calls[1].error_kind == "not_found"
        assert calls[2].result["echo"] == "fast"

    @pytest.mark.asyncio
    async def test_cacheable_results_are_reused(self):
        registry, invocations = make_registry(enable_cache=True)

        first = await registry.execute("echo", {"text": "hi"})
        second = await registry.execute("echo", {"text": "hi"})

        assert first.success and not first.cached
        assert second.success and second.cached
        assert second.result == first.result
        assert invocations == ["hi"]

    @pytest.mark.asyncio
    async def test_cache_stays_bounded_and_drops_expired_entries(self):
        registry, _ = make_registry(enable_cache=True, cache_ttl_seconds=0.5, cache_max_entries=50)

        for i in range(200):
            await registry.execute("echo", {"text": f"q{i}"})
        assert registry.cache_size() == 50

        await asyncio.sleep(0.6)
        await registry.execute("echo", {"text": "fresh"})
        assert registry.cache_size() == 1

    @pytest.mark.asyncio
    async def test_cache_evicts_least_recently_used(self):
        registry, invocations = make_registry(enable_cache=True, cache_max_entries=2)

        await registry.execute("echo", {"text": "a"})
        await registry.execute("echo", {"text": "b"})
        await registry.execute("echo", {"text": "a"})
        await registry.execute("echo", {"text": "c"})
        again = await registry.execute("echo", {"text": "a"})

        assert again.cached
        assert invocations == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_cached_result_is_not_shared_with_callers(self):
        registry, _ = make_registry(enable_cache=True)

        first = await registry.execute("echo", {"text": "hi"})
        first.result["echo"] = "tampered"
        second = await registry.execute("echo", {"text": "hi"})
        second.result["extra"] = True
        third = await registry.execute("echo", {"text": "hi"})

        assert third.cached
        assert third.result == {"success": True, "echo": "hi"}

    def test_cache_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ToolRegistry(cache_max_entries=0)

    @pytest.mark.asyncio
    async def test_timeout(self):
        registry, _ = make_registry(default_timeout=0.05)

        call = await registry.execute("echo", {"text": "x", "delay": 1.0})

        assert call.status == ToolCallStatus.ERROR
        assert call.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_retry_policy_recovers_from_transient_failure(self):
        attempts = []

        def flaky(query: str):
            attempts.append(query)
            if len(attempts) == 1:
                raise ConnectionError("reset by peer")
            return {"success": True, "query": query}

        registry = ToolRegistry()
        registry.register(Tool(
            name="flaky", description="Fails once", func=flaky,
            retry_policy=RetryPolicy(max_retries=2, initial_delay=0.0),
        ))

        call = await registry.execute("flaky", {"query": "acme"})

        assert call.success
        assert call.retry_count == 1
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_result_is_an_execution_error(self):
        registry = ToolRegistry()
        registry.register(Tool(
            name="broken", description="Always reports failure",
            func=lambda: {"success": False, "error": "upstream said no"},
        ))

        call = await registry.execute("broken", {})

        assert call.error_kind == "execution"
        assert call.error == "upstream said no"

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        registry = ToolRegistry()
        registry.register(Tool(
            name="limited", description="One call per minute", func=lambda: {"success": True},
            rate_limit=RateLimit(max_calls=1, window_seconds=60.0),
        ))

        first = await registry.execute("limited", {})
        second = await registry.execute("limited", {})

        assert first.success
        assert second.error_kind == "rate_limited"

    @pytest.mark.asyncio
    async def test_statistics_format(self):
        registry, _ = make_registry()
        await registry.execute("echo", {"text": "a"})
        await registry.execute("echo", {"text": "b", "delay": 5.0}, timeout=0.01)

        stats = registry.list_tools("statistics")

        assert stats["totalExecutions"] == 2
        assert stats["successRate"] == pytest.approx(0.5)
        assert stats["tools"]["echo"]["invocationCount"] == 2
        assert stats["tools"]["echo"]["avgLatency"] >= 0

    @pytest.mark.asyncio
    async def test_statistics_count_rejected_and_cached_calls(self):
        registry, invocations = make_registry(enable_cache=True)
        registry.register(Tool(
            name="limited", description="One call per minute", func=lambda: {"success": True},
            rate_limit=RateLimit(max_calls=1, window_seconds=60.0),
        ))

        await registry.execute("echo", {"text": "a"})
        await registry.execute("echo", {"text": "a"})
        await registry.execute("echo", {"delay": 0})
        await registry.execute("limited", {})
        await registry.execute("limited", {})
        await registry.execute("missing", {})

        stats = registry.list_tools("statistics")

        assert invocations == ["a"]
        assert stats["tools"]["echo"]["invocationCount"] == 3
        assert stats["tools"]["echo"]["successRate"] == pytest.approx(2 / 3)
        assert stats["tools"]["limited"]["invocationCount"] == 2
        assert "missing" not in stats["tools"]
        assert stats["totalExecutions"] == 5

    @pytest.mark.asyncio
    async def test_history_and_categories(self, registry):
        await registry.execute("calculator", {"expression": "1 + 1"})
        await registry.execute("nope", {})

        history = registry.get_history()
        assert [c.name for c in history] == ["calculator", "nope"]
        assert [c.name for c in registry.get_history(limit=1)] == ["nope"]
        registry.clear_history()
        assert registry.get_history() == []

        compute = {t.name for t in registry.get_tools_by_category("compute")}
        assert compute == {"calculator", "financial_calculator", "data_analysis"}

    def test_listing_formats(self, registry):
        llm = registry.list_tools("llm")
        openai = registry.list_tools("openai")

        names = [t["name"] for t in llm]
        assert {"web_search", "news_search", "company_search", "calculator"} <= set(names)
        web = next(t for t in llm if t["name"] == "web_search")
        assert "query" in web["parameters"]["properties"]
        assert all(t["type"] == "function" for t in openai)
        with pytest.raises(ValueError):
            registry.list_tools("yaml")


class TestBuiltinTools:
    def test_safe_eval(self):
        assert safe_eval("2 + 2 * 3") == 8
        assert safe_eval("sqrt(144)") == 12
        with pytest.raises(ValueError):
            safe_eval("__import__('os').system('true')")
        with pytest.raises(ValueError):
            safe_eval("2 ** 100000")

    @pytest.mark.asyncio
    async def test_calculator_rejects_code(self, registry):
        call = await registry.execute("calculator", {"expression": "open('/etc/passwd')"})
        assert call.error_kind == "execution"

    @pytest.mark.asyncio
    async def test_financial_calculator(self, registry):
        growth = await registry.execute(
            "financial_calculator", {"metric": "growth_rate", "values": {"previous": 100, "current": 125}}
        )
        zero = await registry.execute(
            "financial_calculator", {"metric": "profit_margin", "values": {"net_income": 5, "revenue": 0}}
        )
        unknown = await registry.execute("financial_calculator", {"metric": "vibes", "values": {}})

        assert growth.result["result"] == 25.0
        assert zero.error_kind == "execution"
        assert "zero denominator" in zero.error
        assert unknown.error_kind == "validation"

    @pytest.mark.asyncio
    async def test_mock_web_search(self, registry):
        call = await registry.execute("web_search", {"query": "Acme Corp", "max_results": 2})

        assert call.success
        assert call.result["count"] == 2
        assert all(s["url"].startswith("https://") for s in call.result["sources"])
