"""Synthesis-phase agents: synthesis, strategy and writing."""

from typing import Any, Dict, List

from core.base_agent import LLMAgent

from .analysis_agents import _succeeded


def _first_text(result: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = result.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


class SynthesisAgent(LLMAgent):
    key = "synthesis"
    display_name = "Synthesis Agent"
    description = "Combines all findings into a coherent company picture"
    capabilities = ("synthesis", "summarization")
    system_prompt = """You are a Synthesis Agent. Combine the earlier findings into one coherent picture.
Flag conflicts between agents instead of resolving them silently.

Return a JSON object with:
{
    "summary": "3-5 sentence executive summary",
    "swot": {"strengths": [], "weaknesses": [], "opportunities": [], "threats": []},
    "conflicts": ["..."],
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        company = input_data["company_name"]
        data = _succeeded(input_data.get("data") or {})
        overview = _first_text(data.get("research") or {}, "overview")
        position = _first_text(data.get("market") or {}, "market_position")
        parts = [p for p in (overview, position) if p and p != "Unknown"]
        summary = " ".join(parts) or f"Limited information is available about {company}."
        risks = [r.get("risk", "") for r in (data.get("risk") or {}).get("risks", [])]
        opportunities = [o.get("opportunity", "") for o in (data.get("opportunity") or {}).get("opportunities", [])]
        return {
            "summary": summary,
            "swot": {
                "strengths": [],
                "weaknesses": [],
                "opportunities": opportunities,
                "threats": risks,
            },
            "conflicts": [],
            "confidence": 0.5 if parts else 0.2,
        }


class StrategyAgent(LLMAgent):
    key = "strategy"
    display_name = "Strategy Agent"
    description = "Develops an account strategy and recommended actions"
    capabilities = ("strategy", "account-planning")
    system_prompt = """You are a Strategy Agent. From the earlier findings ONLY, build an account strategy.

Return a JSON object with:
{
    "objectives": ["..."],
    "recommended_actions": [{"action": "...", "owner": "...", "timeline": "..."}],
    "value_proposition": "...",
    "confidence": 0.0-1.0
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        company = input_data["company_name"]
        data = _succeeded(input_data.get("data") or {})
        actions: List[Dict[str, str]] = []
        for item in (data.get("opportunity") or {}).get("opportunities", [])[:3]:
            actions.append({"action": item.get("opportunity", ""), "owner": "account team", "timeline": "next quarter"})
        if (data.get("contact") or {}).get("decision_makers"):
            actions.append({"action": "Schedule introductions with identified decision-makers", "owner": "account executive", "timeline": "30 days"})
        goals = input_data.get("research_goals") or []
        return {
            "objectives": list(goals) or [f"Establish a relationship with {company}"],
            "recommended_actions": actions,
            "value_proposition": "",
            "confidence": 0.4 if actions else 0.2,
        }


class WritingAgent(LLMAgent):
    key = "writing"
    display_name = "Writing Agent"
    description = "Writes the account plan document"
    capabilities = ("writing", "formatting")
    system_prompt = """You are a Writing Agent. Turn the earlier findings into a concise account plan in Markdown.
Use sections: Overview, Products, Market & Competition, Financial Snapshot, Recent Signals, Risks, Opportunities, Recommended Actions.
Cite sources inline as [S1], [S2] in the order of the sources provided.

Return a JSON object with:
{
    "title": "...",
    "document": "markdown account plan",
    "word_count": number
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        company = input_data["company_name"]
        data = _succeeded(input_data.get("data") or {})
        lines = [f"# Account Plan: {company}", ""]
        summary = _first_text(data.get("synthesis") or {}, "summary")
        if summary:
            lines += ["## Overview", summary, ""]
        products = (data.get("product") or {}).get("products", [])
        if products:
            lines.append("## Products")
            lines += [f"- {p.get('name', '')}" for p in products]
            lines.append("")
        risks = (data.get("risk") or {}).get("risks", [])
        if risks:
            lines.append("## Risks")
            lines += [f"- {r.get('risk', '')} ({r.get('severity', 'unknown')})" for r in risks]
            lines.append("")
        actions = (data.get("strategy") or {}).get("recommended_actions", [])
        if actions:
            lines.append("## Recommended Actions")
            lines += [f"- {a.get('action', '')}" for a in actions]
            lines.append("")
        document = "\n".join(lines).strip() + "\n"
        return {
            "title": f"Account Plan: {company}",
            "document": document,
            "word_count": len(document.split()),
        }
