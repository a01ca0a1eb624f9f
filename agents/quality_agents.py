"""Quality-assurance agents: validation and quality scoring."""

from typing import Any, Dict

from core.base_agent import LLMAgent

from .analysis_agents import _succeeded

# Findings every complete account plan should have.
EXPECTED_FINDINGS = (
    "research", "news", "product", "market", "contact",
    "financial", "competitive", "risk", "opportunity",
    "synthesis", "strategy", "writing",
)


def completeness(data: Dict[str, Any]) -> float:
    succeeded = _succeeded(data)
    present = [name for name in EXPECTED_FINDINGS if name in succeeded]
    return round(len(present) / len(EXPECTED_FINDINGS), 2)


class ValidationAgent(LLMAgent):
    key = "validation"
    display_name = "Validation Agent"
    description = "Validates findings for completeness and unsupported claims"
    capabilities = ("validation", "fact-checking")
    required_fields = ("company_name", "data")
    system_prompt = """You are a Validation Agent. Check the findings for unsupported claims, invented names or
figures, and internal contradictions.

Return a JSON object with:
{
    "issues": [{"agent": "...", "issue": "...", "severity": "low|medium|high"}],
    "unsupported_claims": ["..."],
    "is_valid": true|false
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        data = input_data["data"]
        succeeded = _succeeded(data)
        issues = [
            {"agent": name, "issue": "agent produced no findings", "severity": "medium"}
            for name in EXPECTED_FINDINGS
            if name not in succeeded
        ]
        for name, result in succeeded.items():
            if "confidence" in result and not result.get("sources") and result["confidence"] > 0.5:
                issues.append({"agent": name, "issue": "high confidence without sources", "severity": "low"})
        return {
            "issues": issues,
            "unsupported_claims": [],
            "completeness": completeness(data),
            "is_valid": not any(i["severity"] == "high" for i in issues),
        }


class QualityAgent(LLMAgent):
    key = "quality"
    display_name = "Quality Agent"
    description = "Scores the overall quality of the research output"
    capabilities = ("quality-scoring",)
    required_fields = ("company_name", "data")
    system_prompt = """You are a Quality Agent. Score the research output.

Return a JSON object with:
{
    "quality_score": 0-100,
    "coverage": 0.0-1.0,
    "average_confidence": 0.0-1.0,
    "improvements": ["..."]
}"""

    def fallback(self, input_data: Dict[str, Any], evidence: Dict[str, Any]) -> Dict[str, Any]:
        data = input_data["data"]
        succeeded = _succeeded(data)
        confidences = [
            float(r["confidence"]) for r in succeeded.values()
            if isinstance(r.get("confidence"), (int, float))
        ]
        average = sum(confidences) / len(confidences) if confidences else 0.0
        coverage = completeness(data)
        return {
            "quality_score": round(100 * (0.6 * coverage + 0.4 * average)),
            "coverage": coverage,
            "average_confidence": round(average, 2),
            "improvements": [f"Re-run {name}" for name in EXPECTED_FINDINGS if name not in succeeded],
        }
