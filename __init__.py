"""
Account Research Orchestrator

A multi-agent system that researches a company and streams the combined
output of fifteen narrow-purpose agents as one ordered event stream:
- Workflow Scheduler: drives initial research, deep analysis, synthesis and
  quality assurance, running each phase's agents concurrently
- Agent Task Runner: per-attempt timeout, bounded retry, failure isolation
- Tool Registry: validated, rate-limited, cached access to search and
  calculator tools
- Reasoning Agent: conversational think/act/observe loop that delegates
  research requests to the workflow

Key Features:
- Graceful degradation when an agent fails (partial results)
- Live tool-call and task-status events, not just final results
- Per-agent and per-tool performance statistics
- Bounded per-session state with explicit eviction
"""

__version__ = "2.0.0"
__author__ = "Multi-Agent Research Team"
