"""
Engine Core - Game records, results and the primitives the managers share.

The core holds no orchestration:
1. state: cards, players, sessions, callouts, turn state
2. action: error codes, effects and ActionResult
3. timing: injectable clock/randomness and cooldown arithmetic
4. errors: internal exceptions converted to results at the boundary
"""

from .state import (
    Card,
    CardSide,
    CardType,
    Callout,
    CalloutStatus,
    CloneMap,
    CloneSource,
    EndCondition,
    GameResults,
    Player,
    PlayerStatus,
    PromptState,
    PromptStatus,
    Session,
    SessionStatus,
    TurnState,
)
from .action import ActionResult, Effect, EffectType, ErrorCode
from .timing import Clock, RandomSource, SystemClock, build_rng
from .errors import RuletteError, InvalidTransition

__all__ = [
    "Card",
    "CardSide",
    "CardType",
    "Callout",
    "CalloutStatus",
    "CloneMap",
    "CloneSource",
    "EndCondition",
    "GameResults",
    "Player",
    "PlayerStatus",
    "PromptState",
    "PromptStatus",
    "Session",
    "SessionStatus",
    "TurnState",
    "ActionResult",
    "Effect",
    "EffectType",
    "ErrorCode",
    "Clock",
    "RandomSource",
    "SystemClock",
    "build_rng",
    "RuletteError",
    "InvalidTransition",
]
