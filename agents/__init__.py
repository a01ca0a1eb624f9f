from .research_agents import ResearchAgent, NewsAgent, ProductAgent, MarketAgent, ContactAgent
from .analysis_agents import FinancialAgent, CompetitiveAgent, RiskAgent, OpportunityAgent, AnalysisAgent
from .synthesis_agents import SynthesisAgent, StrategyAgent, WritingAgent
from .quality_agents import ValidationAgent, QualityAgent
from .orchestrator import AgentOrchestrator, PHASE_PLAN, create_default_agents
from .reasoning_agent import ReasoningAgent, extract_company_name, detect_workflow_intent

__all__ = [
    "ResearchAgent",
    "NewsAgent",
    "ProductAgent",
    "MarketAgent",
    "ContactAgent",
    "FinancialAgent",
    "CompetitiveAgent",
    "RiskAgent",
    "OpportunityAgent",
    "AnalysisAgent",
    "SynthesisAgent",
    "StrategyAgent",
    "WritingAgent",
    "ValidationAgent",
    "QualityAgent",
    "AgentOrchestrator",
    "PHASE_PLAN",
    "create_default_agents",
    "ReasoningAgent",
    "extract_company_name",
    "detect_workflow_intent",
]
