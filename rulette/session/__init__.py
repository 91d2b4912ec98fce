"""
Session Module - Runs Rulette game sessions.

A session is one game from lobby to final standings:
- Created by a host, joined by code
- Holds players, hands, the referee and callouts
- Ends on an end condition or by the host

Sessions live in a SessionStore; the persistence mirror only receives
copies of state and is never read back except for the referee roster.
"""

from .store import SessionStore, InMemorySessionStore
from .turns import TurnManager
from .referee import RefereeManager
from .callouts import CalloutManager, CalloutRecord
from .cards import CardActions, is_blocked
from .prompts import PromptManager
from .endgame import evaluate_end_condition, compute_results
from .manager import GameManager, generate_session_id

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "TurnManager",
    "RefereeManager",
    "CalloutManager",
    "CalloutRecord",
    "CardActions",
    "is_blocked",
    "PromptManager",
    "evaluate_end_condition",
    "compute_results",
    "GameManager",
    "generate_session_id",
]
