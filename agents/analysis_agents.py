"""Deep-analysis agents: financial, competitive, risk and opportunity."""

import re
from typing import Any, Dict, List

from core.base_agent import AgentContext, LLMAgent

from .research_agents import SearchingAgent, _confidence, _snippets


def _succeeded(data: Dict[str, Any]) -> Dict[str, Any]:
    """Earlier-phase results without the failure markers."""
    return {
        name: result
        for name, result in (data or {}).items()
        if isinstance(result, dict) and "error" not in result
    }


_MONEY = re.compile(r"\$\s?(\d+(?:\.\d+)?)\s?(billion|million|bn|m)\b", re.IGNORECASE)


def extract_amounts(texts: List[str]) -> List[float]:
    """Dollar amounts mentioned in free text, in millions."""
    amounts = []
    for text in texts:
        for value, unit in _MONEY.findall(text):
            scale = 1000.0 if unit.lower() in ("billion", "bn") else 1.0
            amounts.append(float(value) * scale)
    return amounts


class FinancialAgent(SearchingAgent):
    key = "financial"
    display_name = "Financial Agent"
    description = "Analyzes financial performance, revenue, and financial health"
    capabilities = ("financial-analysis", "revenue-analysis", "financial-health")
    query_template = "{company} revenue earnings financial results"
    system_prompt = """You are a Financial Agent. Using ONLY the evidence and earlier findings, assess financial health.
If no trusted financial data is present, say so.

Return a JSON object with:
{
    "revenue": {"amount": number or null, "currency": "USD", "period": "..."},
    "growth": {"rate": number or null, "trend": "growing|stable|declining|unknown"},
    "financial_health": "...",
    "key_metrics": [{"name": "...", "value": "..."}],
    "confidence": 0.0-1.0
}"""

    async def gather(self, input_data: Dict[str, Any], context: AgentContext) -> Dict[str, Any]:
        evidence = await super().gather(input_data, context)
        amounts = extract_amounts(_snippets(evidence.get("sources", []), limit=10))
        if len(amounts) > 1:
            call = await context.tools.execute("data_analysis", {"values": amounts})
            if call.success:
                evidence["amount_statistics"] = call.result
        return evidence

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        amounts = extract_amounts(_snippets(sources, limit=10))
        stats = evidence.get("amount_statistics") or {}
        return {
            "revenue": {"amount": max(amounts) if amounts else None, "currency": "USD", "period": "unknown", "unit": "millions"},
            "growth": {"rate": None, "trend": stats.get("trend", "unknown")},
            "financial_health": "insufficient data" if not amounts else "reported figures found",
            "key_metrics": [{"name": "amounts_mentioned", "value": str(len(amounts))}],
            "confidence": round(_confidence(sources) * (1.0 if amounts else 0.5), 2),
        }


class CompetitiveAgent(SearchingAgent):
    key = "competitive"
    display_name = "Competitive Agent"
    description = "Analyzes competitors and competitive positioning"
    capabilities = ("competitive-analysis", "positioning")
    query_template = "{company} competitors alternatives"
    system_prompt = """You are a Competitive Agent. Using ONLY the evidence and earlier findings, map the competitive landscape.

Return a JSON object with:
{
    "competitors": [{"name": "...", "positioning": "..."}],
    "differentiators": ["..."],
    "threats": ["..."],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        sources = evidence.get("sources", [])
        return {
            "competitors": [],
            "differentiators": [],
            "threats": [],
            "references": [{"title": s.get("title", ""), "url": s.get("url", "")} for s in sources],
            "confidence": round(_confidence(sources) / 2, 2),
        }


class RiskAgent(LLMAgent):
    key = "risk"
    display_name = "Risk Agent"
    description = "Identifies business, financial and engagement risks"
    capabilities = ("risk-assessment",)
    system_prompt = """You are a Risk Agent. From the earlier findings ONLY, identify risks.

Return a JSON object with:
{
    "risks": [{"risk": "...", "severity": "low|medium|high", "evidence": "..."}],
    "overall_risk": "low|medium|high",
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        data = input_data.get("data") or {}
        risks = [
            {"risk": f"No {name} findings available", "severity": "medium", "evidence": result.get("error", "")}
            for name, result in data.items()
            if isinstance(result, dict) and "error" in result
        ]
        news = data.get("news") or {}
        if news.get("sentiment") == "negative":
            risks.append({"risk": "Negative news coverage", "severity": "high", "evidence": "news sentiment"})
        overall = "high" if len(risks) > 2 else "medium" if risks else "low"
        return {"risks": risks, "overall_risk": overall, "confidence": 0.4}


class OpportunityAgent(LLMAgent):
    key = "opportunity"
    display_name = "Opportunity Agent"
    description = "Identifies sales and partnership opportunities"
    capabilities = ("opportunity-identification",)
    system_prompt = """You are an Opportunity Agent. From the earlier findings ONLY, identify concrete opportunities.

Return a JSON object with:
{
    "opportunities": [{"opportunity": "...", "rationale": "...", "priority": "low|medium|high"}],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        data = _succeeded(input_data.get("data") or {})
        opportunities = []
        for product in (data.get("product") or {}).get("products", [])[:3]:
            opportunities.append({
                "opportunity": f"Engage around {product.get('name', 'core offering')}",
                "rationale": product.get("description", ""),
                "priority": "medium",
            })
        for signal in (data.get("news") or {}).get("signals", [])[:3]:
            opportunities.append({"opportunity": signal, "rationale": "recent news signal", "priority": "high"})
        return {"opportunities": opportunities, "confidence": 0.4 if opportunities else 0.2}


class AnalysisAgent(LLMAgent):
    key = "analysis"
    display_name = "Analysis Agent"
    description = "Summarizes findings and extracts key insights"
    capabilities = ("summarization", "pattern-extraction")
    required_fields = ("company_name", "data")
    system_prompt = """You are an Analysis Agent. Analyze ONLY the findings provided.

Return a JSON object with:
{
    "summary": "...",
    "key_points": ["..."],
    "themes": ["..."],
    "gaps": ["What the findings don't cover"]
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        data = input_data["data"]
        succeeded = _succeeded(data)
        return {
            "summary": f"{len(succeeded)} of {len(data)} agents produced findings for {input_data['company_name']}.",
            "key_points": sorted(succeeded),
            "themes": [],
            "gaps": sorted(set(data) - set(succeeded)),
        }
