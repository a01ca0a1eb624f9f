from typing import Any, Optional

from core.tools import ToolRegistry

from .calculator import calculator_tools
from .search import search_tools


def create_default_registry(
    tavily_client: Optional[Any] = None,
    options: Optional[Any] = None,
) -> ToolRegistry:
    """Registry with the built-in search and calculator tools registered."""
    if options is not None:
        registry = ToolRegistry(
            default_timeout=options.tool_timeout_seconds,
            enable_cache=options.enable_cache,
            cache_ttl_seconds=options.cache_ttl_seconds,
            cache_max_entries=options.cache_max_entries,
        )
    else:
        registry = ToolRegistry()
    for tool in search_tools(tavily_client) + calculator_tools():
        registry.register(tool)
    return registry


__all__ = [
    "create_default_registry",
    "calculator_tools",
    "search_tools",
]
