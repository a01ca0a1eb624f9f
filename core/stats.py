"""
Rolling per-agent performance metrics.

Written only from task completion handlers, read by dashboards through
snapshots. A lock keeps the single-writer discipline safe even when the
API serves snapshot reads from worker threads.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Union

from .types import AgentStats


class StatsAggregator:
    """Maintains AgentStats keyed by agent (or tool) name."""

    def __init__(self, max_errors: int = 10):
        self.max_errors = max_errors
        self._stats: Dict[str, AgentStats] = {}
        self._lock = threading.Lock()

    def record(
        self,
        agent_name: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> AgentStats:
        """Fold one resolved outcome into the agent's stats."""
        with self._lock:
            stats = self._stats.get(agent_name)
            if stats is None:
                stats = AgentStats(name=agent_name)
                self._stats[agent_name] = stats

            if success:
                stats.tasks_completed += 1
            else:
                stats.tasks_failed += 1

            n = stats.total
            stats.average_execution_time = (
                stats.average_execution_time * (n - 1) + duration_ms
            ) / n
            if stats.min_execution_time is None or duration_ms < stats.min_execution_time:
                stats.min_execution_time = duration_ms
            if stats.max_execution_time is None or duration_ms > stats.max_execution_time:
                stats.max_execution_time = duration_ms

            stats.success_rate = min(1.0, max(0.0, stats.tasks_completed / n))
            stats.last_execution_time = datetime.now()

            if error and error not in stats.errors and len(stats.errors) < self.max_errors:
                stats.errors.append(error)

            return self._copy(stats)

    def snapshot(self, agent_name: Optional[str] = None) -> Union[AgentStats, List[AgentStats]]:
        """Copy of one agent's stats, or of every agent's stats."""
        with self._lock:
            if agent_name is not None:
                stats = self._stats.get(agent_name) or AgentStats(name=agent_name)
                return self._copy(stats)
            return [self._copy(s) for s in self._stats.values()]

    @staticmethod
    def _copy(stats: AgentStats) -> AgentStats:
        return replace(stats, errors=list(stats.errors))
