"""
Engine configuration - Tunables for sessions, callouts and card actions.

Every timing and limit the engine enforces lives here so tests and
deployments can override them without touching the managers.

Environment variables (all optional):
    RULETTE_STARTING_POINTS          Points every player starts with
    RULETTE_CALLOUT_COOLDOWN         Seconds between two callouts by one caller
    RULETTE_CALLOUT_WINDOW           Rate-limit window in seconds
    RULETTE_MAX_CALLOUTS_PER_WINDOW  Callouts allowed per caller per window
    RULETTE_REFEREE_COOLDOWN         Seconds between two referee decisions
    RULETTE_CLONE_DEPTH_LIMIT        Deepest clone-of-clone chain allowed
    RULETTE_PROMPT_TIME_LIMIT        Default prompt challenge length in seconds
    RULETTE_MAX_PLAYERS              Seats per session
    RULETTE_MIN_PLAYERS              Active players needed to start
    RULETTE_MAX_TURNS                Full rounds before the game ends (0 = off)
    RULETTE_LOG_LEVEL                Root log level for configure_logging()
"""

from __future__ import annotations
from dataclasses import dataclass
import logging
import os


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class EngineConfig:
    """Limits and timings used by the game engine."""
    starting_points: int = 20

    # Callout throttling
    callout_cooldown_seconds: float = 30.0
    callout_window_seconds: float = 60.0
    max_callouts_per_window: int = 3
    callout_ledger_size: int = 10
    referee_decision_cooldown_seconds: float = 5.0

    # Card actions
    clone_depth_limit: int = 3

    # Prompt challenges
    prompt_time_limit_seconds: float = 60.0

    # Session shape
    max_players: int = 6
    min_players: int = 2
    max_turns: int = 10

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from RULETTE_* environment variables."""
        defaults = cls()
        return cls(
            starting_points=_env_int("RULETTE_STARTING_POINTS", defaults.starting_points),
            callout_cooldown_seconds=_env_float(
                "RULETTE_CALLOUT_COOLDOWN", defaults.callout_cooldown_seconds
            ),
            callout_window_seconds=_env_float(
                "RULETTE_CALLOUT_WINDOW", defaults.callout_window_seconds
            ),
            max_callouts_per_window=_env_int(
                "RULETTE_MAX_CALLOUTS_PER_WINDOW", defaults.max_callouts_per_window
            ),
            callout_ledger_size=defaults.callout_ledger_size,
            referee_decision_cooldown_seconds=_env_float(
                "RULETTE_REFEREE_COOLDOWN", defaults.referee_decision_cooldown_seconds
            ),
            clone_depth_limit=_env_int("RULETTE_CLONE_DEPTH_LIMIT", defaults.clone_depth_limit),
            prompt_time_limit_seconds=_env_float(
                "RULETTE_PROMPT_TIME_LIMIT", defaults.prompt_time_limit_seconds
            ),
            max_players=_env_int("RULETTE_MAX_PLAYERS", defaults.max_players),
            min_players=_env_int("RULETTE_MIN_PLAYERS", defaults.min_players),
            max_turns=_env_int("RULETTE_MAX_TURNS", defaults.max_turns),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def configure_logging(level: str | None = None) -> None:
    """Set up root logging for the CLI and the API server."""
    level_name = (level or os.getenv("RULETTE_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
