"""Runtime configuration for the agent session."""

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class AgentConfig:
    """Configuration for the conversation driver and replay engine."""

    max_iterations: int = 5
    max_retries: int = 5
    retry_backoff: float = 2.0  # seconds, multiplied by the attempt number
    iteration_delay: float = 2.0
    replay_delay: float = 0.5
    temperature: float = 0.2

    ledger_path: str = "learning.json"
    # Navigating to this origin pauses once for the operator (manual login)
    target_origin: str | None = None
    debug: bool = False

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build a configuration from AUTOBROWSER_* environment variables."""
        return cls(
            max_iterations=_env_int("AUTOBROWSER_MAX_ITERATIONS", cls.max_iterations),
            max_retries=_env_int("AUTOBROWSER_MAX_RETRIES", cls.max_retries),
            retry_backoff=_env_float("AUTOBROWSER_RETRY_BACKOFF", cls.retry_backoff),
            iteration_delay=_env_float("AUTOBROWSER_ITERATION_DELAY", cls.iteration_delay),
            replay_delay=_env_float("AUTOBROWSER_REPLAY_DELAY", cls.replay_delay),
            temperature=_env_float("AUTOBROWSER_TEMPERATURE", cls.temperature),
            ledger_path=os.getenv("AUTOBROWSER_LEDGER", cls.ledger_path),
            target_origin=os.getenv("AUTOBROWSER_TARGET_ORIGIN") or None,
            debug=os.getenv("DEBUG", "") in ("1", "true", "yes"),
        )
