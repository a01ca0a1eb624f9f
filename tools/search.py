"""
Search tools backed by the Tavily API.

When no Tavily client is configured the tools return deterministic mock
results so the rest of the system stays usable in demos and tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.tools import RateLimit, RetryPolicy, Tool


class WebSearchParams(BaseModel):
    query: str = Field(..., min_length=1, description="Search query - be specific and include relevant keywords")
    max_results: int = Field(5, ge=1, le=20, description="Number of results to return (1-20)")


class NewsSearchParams(BaseModel):
    query: str = Field(..., min_length=1, description="News search query or company name")
    days: int = Field(7, ge=1, le=30, description="Days back to search (1-30)")
    max_results: int = Field(5, ge=1, le=20, description="Maximum number of articles")


class CompanySearchParams(BaseModel):
    company_name: str = Field(..., min_length=1, description="Company name to search for")
    include_news: bool = Field(True, description="Include recent news")


def _mock_results(query: str, max_results: int) -> List[Dict[str, Any]]:
    slug = "-".join(query.lower().split())[:60]
    results = [
        {
            "title": f"Research on: {query}",
            "url": f"https://example.com/research/{slug}",
            "snippet": f"Comprehensive analysis of {query}. This source provides detailed information and data points relevant to the research topic.",
            "score": 0.95,
        },
        {
            "title": f"Expert Analysis: {query}",
            "url": f"https://analysis.example.com/{slug}",
            "snippet": f"Industry perspective on {query} with market data and commentary.",
            "score": 0.88,
        },
        {
            "title": f"Latest News: {query}",
            "url": f"https://news.example.com/{slug}",
            "snippet": f"Recent developments regarding {query}. Updated information from reliable news sources.",
            "score": 0.82,
        },
    ]
    return results[:max_results]


class TavilySearch:
    """Thin async adapter over the synchronous Tavily client."""

    def __init__(self, client: Optional[Any] = None, search_depth: str = "advanced"):
        self.client = client
        self.search_depth = search_depth

    async def search(self, query: str, max_results: int = 5, topic: str = "general", days: Optional[int] = None) -> Dict[str, Any]:
        if not self.client:
            return {"query": query, "results": _mock_results(query, max_results), "mock": True}

        kwargs: Dict[str, Any] = {
            "query": query,
            "search_depth": self.search_depth,
            "max_results": max_results,
            "topic": topic,
        }
        if days is not None:
            kwargs["days"] = days
        response = await asyncio.to_thread(self.client.search, **kwargs)

        results = []
        for item in response.get("results", []):
            results.append({
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "snippet": item.get("content", ""),
                "score": item.get("score", 0.0),
                "published_date": item.get("published_date"),
            })
        return {"query": query, "results": results, "answer": response.get("answer", "")}


def search_tools(tavily_client: Optional[Any] = None) -> List[Tool]:
    """Build the web, news and company search tools."""
    backend = TavilySearch(tavily_client)
    retry = RetryPolicy(max_retries=2, backoff="exponential", initial_delay=1.0, max_delay=8.0)
    limit = RateLimit(max_calls=60, window_seconds=60.0)

    async def web_search(query: str, max_results: int = 5) -> Dict[str, Any]:
        response = await backend.search(query, max_results=max_results)
        return {
            "success": True,
            "query": query,
            "results": response["results"],
            "sources": response["results"],
            "count": len(response["results"]),
        }

    async def news_search(query: str, days: int = 7, max_results: int = 5) -> Dict[str, Any]:
        response = await backend.search(query, max_results=max_results, topic="news", days=days)
        return {
            "success": True,
            "query": query,
            "articles": response["results"],
            "sources": response["results"],
            "count": len(response["results"]),
        }

    async def company_search(company_name: str, include_news: bool = True) -> Dict[str, Any]:
        web = await backend.search(f"{company_name} company official website overview", max_results=3)
        news: List[Dict[str, Any]] = []
        if include_news:
            news = (await backend.search(company_name, max_results=3, topic="news", days=30))["results"]
        return {
            "success": True,
            "company": {
                "name": company_name,
                "sources": web["results"],
                "recentNews": news,
            },
            "sources": web["results"] + news,
        }

    return [
        Tool(
            name="web_search",
            description="Search the web for current information. Returns top results with titles, URLs, and snippets.",
            func=web_search,
            schema=WebSearchParams,
            category="search",
            retry_policy=retry,
            rate_limit=limit,
            cacheable=True,
        ),
        Tool(
            name="news_search",
            description="Search for recent news articles about a topic, company, or person.",
            func=news_search,
            schema=NewsSearchParams,
            category="search",
            retry_policy=retry,
            rate_limit=limit,
            cacheable=True,
        ),
        Tool(
            name="company_search",
            description="Search for company information including website, description, and recent news.",
            func=company_search,
            schema=CompanySearchParams,
            category="search",
            retry_policy=retry,
            rate_limit=limit,
            cacheable=True,
        ),
    ]
