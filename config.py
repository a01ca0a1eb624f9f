"""
Configuration for the Account Research Orchestrator.

Environment Variables:
    ANTHROPIC_API_KEY     - Primary: Your Anthropic/Claude API key
    OPENAI_API_KEY        - Fallback: Your OpenAI API key (if no Anthropic key)
    TAVILY_API_KEY        - Optional: Tavily API key for web/news search
    LLM_MODEL             - Optional: LLM model (default: claude-sonnet-4-20250514)
    LLM_PROVIDER          - Optional: LLM provider (default: anthropic)
    MAX_ITERATIONS        - Optional: Reasoning loop iteration cap (default: 10)
    AGENT_TIMEOUT_SECONDS - Optional: Per-attempt agent timeout (default: 60)
    RETRY_ATTEMPTS        - Optional: Attempts per agent task (default: 3)
    MAX_PARALLEL_AGENTS   - Optional: Concurrent agents per phase (default: 5)
    ENABLE_CACHE          - Optional: Cache search tool results (default: true)
    MAX_SESSIONS          - Optional: Resident chat sessions (default: 100)
    LOG_LEVEL             - Optional: Logging level (default: INFO)

Create a .env file in this directory with:

    ANTHROPIC_API_KEY=sk-ant-your-key-here
    TAVILY_API_KEY=tvly-your-key-here
    LLM_MODEL=claude-sonnet-4-20250514
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OrchestratorOptions:
    """Options consumed by the orchestration core.

    Passed in explicitly; the core never reads the environment.
    """

    max_iterations: int = 10
    agent_timeout_seconds: float = 60.0
    retry_attempts: int = 3  # total attempts per agent task
    retry_delay_seconds: float = 1.0
    retry_backoff: float = 2.0
    max_parallel_agents: int = 5
    enable_cache: bool = True
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 1000
    tool_timeout_seconds: float = 30.0
    channel_size: int = 256
    min_successful_agents: int = 1

    def validate(self) -> "OrchestratorOptions":
        """Raise ValueError if any option is out of range."""
        positive = {
            "max_iterations": self.max_iterations,
            "agent_timeout_seconds": self.agent_timeout_seconds,
            "retry_attempts": self.retry_attempts,
            "max_parallel_agents": self.max_parallel_agents,
            "tool_timeout_seconds": self.tool_timeout_seconds,
            "channel_size": self.channel_size,
            "cache_max_entries": self.cache_max_entries,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must not be negative")
        if self.retry_backoff < 1:
            raise ValueError("retry_backoff must be >= 1")
        if self.min_successful_agents < 1:
            raise ValueError("min_successful_agents must be >= 1")
        return self


@dataclass
class Config:
    """Application configuration."""

    # LLM Settings (Claude/Anthropic is primary)
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None  # Fallback
    tavily_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-20250514"
    llm_provider: str = "anthropic"

    # Orchestration Settings
    max_iterations: int = 10
    agent_timeout_seconds: float = 60.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    max_parallel_agents: int = 5
    enable_cache: bool = True
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 1000
    tool_timeout_seconds: float = 30.0

    # Session Settings
    max_sessions: int = 100
    session_eviction: str = "fifo"

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        # Auto-detect provider based on available keys
        anthropic_key = os.getenv("ANTHROPIC_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")

        if anthropic_key:
            provider = "anthropic"
            default_model = "claude-sonnet-4-20250514"
        elif openai_key:
            provider = "openai"
            default_model = "gpt-4-turbo-preview"
        else:
            provider = "anthropic"
            default_model = "claude-sonnet-4-20250514"

        return cls(
            anthropic_api_key=anthropic_key,
            openai_api_key=openai_key,
            tavily_api_key=os.getenv("TAVILY_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", default_model),
            llm_provider=os.getenv("LLM_PROVIDER", provider),
            max_iterations=int(os.getenv("MAX_ITERATIONS", "10")),
            agent_timeout_seconds=float(os.getenv("AGENT_TIMEOUT_SECONDS", "60")),
            retry_attempts=int(os.getenv("RETRY_ATTEMPTS", "3")),
            retry_delay_seconds=float(os.getenv("RETRY_DELAY_SECONDS", "1.0")),
            max_parallel_agents=int(os.getenv("MAX_PARALLEL_AGENTS", "5")),
            enable_cache=_env_bool("ENABLE_CACHE", True),
            cache_ttl_seconds=float(os.getenv("CACHE_TTL_SECONDS", "3600")),
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "1000")),
            tool_timeout_seconds=float(os.getenv("TOOL_TIMEOUT_SECONDS", "30")),
            max_sessions=int(os.getenv("MAX_SESSIONS", "100")),
            session_eviction=os.getenv("SESSION_EVICTION", "fifo"),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> bool:
        """Check if required configuration is present."""
        return bool(self.anthropic_api_key or self.openai_api_key)

    def orchestrator_options(self) -> OrchestratorOptions:
        """Build the options structure handed to the orchestration core."""
        return OrchestratorOptions(
            max_iterations=self.max_iterations,
            agent_timeout_seconds=self.agent_timeout_seconds,
            retry_attempts=self.retry_attempts,
            retry_delay_seconds=self.retry_delay_seconds,
            max_parallel_agents=self.max_parallel_agents,
            enable_cache=self.enable_cache,
            cache_ttl_seconds=self.cache_ttl_seconds,
            cache_max_entries=self.cache_max_entries,
            tool_timeout_seconds=self.tool_timeout_seconds,
        ).validate()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=(level or config.log_level).upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


# Global config instance
config = Config.from_env()
