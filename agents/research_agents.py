"""
Initial-research agents.

Each one gathers evidence about the company through the search tools and
turns it into a focused finding: overview, recent news, products, market
position and decision-makers.
"""

from typing import Any, Dict, List

from core.base_agent import AgentContext, LLMAgent
from core.utils import dedupe_sources


def _snippets(sources: List[Dict[str, Any]], limit: int = 5) -> List[str]:
    return [s.get("snippet", "") for s in sources[:limit] if s.get("snippet")]


def _confidence(sources: List[Dict[str, Any]]) -> float:
    """More independent sources means more confidence, capped at 0.9."""
    return round(min(0.9, 0.3 + 0.15 * len(sources)), 2)


class SearchingAgent(LLMAgent):
    """Runs one web search built from `query_template` and keeps its sources."""

    query_template: str = "{company}"
    tool_name: str = "web_search"

    async def gather(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        query = self.query_template.format(company=input_data["company_name"])
        call = await context.tools.execute(self.tool_name, {"query": query})
        if not call.success:
            return {"query": query, "sources": [], "search_error": call.error}
        return {"query": query, "sources": dedupe_sources(call.result.get("sources", []))}


class ResearchAgent(LLMAgent):
    key = "research"
    display_name = "Research Agent"
    description = "Gathers a company overview from web sources"
    capabilities = ("web-research", "company-overview", "source-gathering")
    system_prompt = """You are a Research Agent. Using ONLY the evidence provided, write a company overview.

Return a JSON object with:
{
    "overview": "2-4 sentence overview",
    "industry": "industry if stated in the evidence",
    "headquarters": "if stated",
    "key_facts": ["fact from source", ...],
    "confidence": 0.0-1.0
}"""

    async def gather(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        # The overview is the foundation for every later phase; a failed
        # lookup fails the attempt so the runner retries it.
        result = await context.tools.call("company_search", company_name=input_data["company_name"])
        return {
            "company": result.get("company", {}),
            "sources": dedupe_sources(result.get("sources", [])),
        }

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        company = input_data["company_name"]
        sources = evidence.get("sources", [])
        facts = _snippets(sources)
        return {
            "overview": facts[0] if facts else f"No overview information found for {company}.",
            "key_facts": facts,
            "confidence": _confidence(sources),
        }


class NewsAgent(SearchingAgent):
    key = "news"
    display_name = "News Agent"
    description = "Tracks recent news and announcements"
    capabilities = ("news-monitoring", "event-detection")
    tool_name = "news_search"
    query_template = "{company}"
    system_prompt = """You are a News Agent. Summarize ONLY the news articles provided.

Return a JSON object with:
{
    "headlines": [{"title": "...", "url": "...", "summary": "..."}],
    "signals": ["buying signal or trigger event", ...],
    "sentiment": "positive|neutral|negative",
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        return {
            "headlines": [
                {"title": s.get("title", ""), "url": s.get("url", ""), "summary": s.get("snippet", "")}
                for s in sources
            ],
            "signals": [],
            "sentiment": "neutral",
            "confidence": _confidence(sources),
        }


class ProductAgent(SearchingAgent):
    key = "product"
    display_name = "Product Agent"
    description = "Maps products, services and offerings"
    capabilities = ("product-analysis", "offering-mapping")
    query_template = "{company} products and services"
    system_prompt = """You are a Product Agent. From the evidence ONLY, list the company's products and services.

Return a JSON object with:
{
    "products": [{"name": "...", "description": "..."}],
    "target_customers": ["..."],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        return {
            "products": [{"name": s.get("title", ""), "description": s.get("snippet", "")} for s in sources[:3]],
            "target_customers": [],
            "confidence": _confidence(sources),
        }


class MarketAgent(SearchingAgent):
    key = "market"
    display_name = "Market Agent"
    description = "Assesses market position, size and trends"
    capabilities = ("market-analysis", "trend-analysis")
    query_template = "{company} market share industry position"
    system_prompt = """You are a Market Agent. From the evidence ONLY, describe the company's market position.

Return a JSON object with:
{
    "market_position": "...",
    "market_trends": ["..."],
    "segments": ["..."],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        facts = _snippets(sources, limit=3)
        return {
            "market_position": facts[0] if facts else "Unknown",
            "market_trends": facts[1:],
            "segments": [],
            "confidence": _confidence(sources),
        }


class ContactAgent(SearchingAgent):
    key = "contact"
    display_name = "Contact Agent"
    description = "Identifies leadership and likely decision-makers"
    capabilities = ("contact-discovery", "org-mapping")
    query_template = "{company} leadership team executives"
    system_prompt = """You are a Contact Agent. From the evidence ONLY, list named executives and decision-makers.
Never invent names, titles or email addresses.

Return a JSON object with:
{
    "decision_makers": [{"name": "...", "title": "...", "source": "url"}],
    "departments": ["..."],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        # Names are never guessed without a model to read the sources.
        return {
            "decision_makers": [],
            "departments": [],
            "leads": [{"title": s.get("title", ""), "url": s.get("url", "")} for s in sources],
            "confidence": round(_confidence(sources) / 2, 2),
        }
