"""
Action Results - Error codes, effects, and results.

Every public engine operation returns an ActionResult:
1. success / error / error_code for the caller
2. effects describing what changed, for the sync layer to mirror
3. data with operation-specific values (new referee, callout id, ...)

Nothing raised inside an operation escapes it; failures are results.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Structured error codes returned in failed results."""
    # Not found
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"

    # Preconditions
    PLAYER_INACTIVE = "PLAYER_INACTIVE"
    PLAYER_NOT_IN_SESSION = "PLAYER_NOT_IN_SESSION"
    NOT_PLAYER_TURN = "NOT_PLAYER_TURN"
    TURN_NOT_INITIALIZED = "TURN_NOT_INITIALIZED"
    DUPLICATE_ACTION = "DUPLICATE_ACTION"
    SESSION_NOT_JOINABLE = "SESSION_NOT_JOINABLE"
    SESSION_FULL = "SESSION_FULL"
    DUPLICATE_PLAYER_NAME = "DUPLICATE_PLAYER_NAME"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    GAME_NOT_IN_PROGRESS = "GAME_NOT_IN_PROGRESS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_CARD_TYPE = "INVALID_CARD_TYPE"
    CARD_NOT_FLIPPABLE = "CARD_NOT_FLIPPABLE"
    NO_AVAILABLE_PLAYERS = "NO_AVAILABLE_PLAYERS"
    PLAYER_IN_ANOTHER_SESSION = "PLAYER_IN_ANOTHER_SESSION"
    INVALID_PLAYER_STATUS = "INVALID_PLAYER_STATUS"
    INVALID_END_CONDITION = "INVALID_END_CONDITION"

    # Policy / abuse
    SELF_CALLOUT = "SELF_CALLOUT"
    REFEREE_NOT_ACCUSABLE = "REFEREE_NOT_ACCUSABLE"
    REFEREE_CANNOT_CALL_OUT = "REFEREE_CANNOT_CALL_OUT"
    NO_REFEREE = "NO_REFEREE"
    CALLOUT_PENDING = "CALLOUT_PENDING"
    CALLOUT_COOLDOWN = "CALLOUT_COOLDOWN"
    CALLOUT_RATE_LIMITED = "CALLOUT_RATE_LIMITED"
    REFEREE_COOLDOWN = "REFEREE_COOLDOWN"
    CLONE_CHAIN_LIMIT_EXCEEDED = "CLONE_CHAIN_LIMIT_EXCEEDED"
    CLONE_BLOCKED = "CLONE_BLOCKED"
    FLIP_BLOCKED = "FLIP_BLOCKED"
    SWAP_BLOCKED = "SWAP_BLOCKED"
    PROMPT_ACTIVE = "PROMPT_ACTIVE"

    # Roles
    NOT_REFEREE = "NOT_REFEREE"
    NOT_CURRENT_REFEREE = "NOT_CURRENT_REFEREE"
    NOT_HOST = "NOT_HOST"
    NOT_PROMPT_PLAYER = "NOT_PROMPT_PLAYER"

    # Integrity
    NO_ACTIVE_CALLOUT = "NO_ACTIVE_CALLOUT"
    CALLOUT_ALREADY_DECIDED = "CALLOUT_ALREADY_DECIDED"
    NO_ACTIVE_PROMPT = "NO_ACTIVE_PROMPT"

    SESSION_ID_EXHAUSTED = "SESSION_ID_EXHAUSTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class EffectType(str, Enum):
    """Kinds of state change reported to the sync layer."""
    SESSION_CREATED = "session_created"
    SESSION_STATUS_CHANGED = "session_status_changed"
    SESSION_REMOVED = "session_removed"
    PLAYER_JOINED = "player_joined"
    PLAYER_STATUS_CHANGED = "player_status_changed"
    HAND_ASSIGNED = "hand_assigned"
    POINTS_CHANGED = "points_changed"
    TURN_ADVANCED = "turn_advanced"
    SPIN_RECORDED = "spin_recorded"
    REFEREE_CHANGED = "referee_changed"
    CALLOUT_CREATED = "callout_created"
    CALLOUT_RESOLVED = "callout_resolved"
    CARD_DRAWN = "card_drawn"
    CARD_MOVED = "card_moved"
    CARDS_SWAPPED = "cards_swapped"
    CARD_CLONED = "card_cloned"
    CARD_FLIPPED = "card_flipped"
    CARD_REMOVED = "card_removed"
    RULE_ACTIVATED = "rule_activated"
    PROMPT_STARTED = "prompt_started"
    PROMPT_TIMED_OUT = "prompt_timed_out"
    PROMPT_COMPLETED = "prompt_completed"
    PROMPT_JUDGED = "prompt_judged"
    GAME_ENDED = "game_ended"


# Effects that change the contents of one or more hands
HAND_EFFECTS = {
    EffectType.HAND_ASSIGNED,
    EffectType.CARD_DRAWN,
    EffectType.CARD_MOVED,
    EffectType.CARDS_SWAPPED,
    EffectType.CARD_CLONED,
    EffectType.CARD_FLIPPED,
    EffectType.CARD_REMOVED,
}


@dataclass
class Effect:
    """One observable change produced by an operation."""
    effect_type: EffectType
    player_id: str | None = None
    target_player_id: str | None = None
    card_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.effect_type.value,
            "player_id": self.player_id,
            "target_player_id": self.target_player_id,
            "card_id": self.card_id,
            "data": dict(self.data),
        }


@dataclass
class ActionResult:
    """
    Result of an engine operation.

    Contains:
    - Whether the operation succeeded
    - Error message and code (if failed)
    - Effects (for mirroring and UI updates)
    - Operation-specific data
    """
    success: bool
    error: str | None = None
    error_code: ErrorCode | None = None
    effects: list[Effect] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, error_code: ErrorCode | str | None = None) -> ActionResult:
        """Create a failure result."""
        code = ErrorCode(error_code) if error_code is not None else None
        return cls(success=False, error=error, error_code=code)

    @classmethod
    def ok(cls, effects: list[Effect] | None = None, **data: Any) -> ActionResult:
        """Create a success result."""
        return cls(success=True, effects=effects or [], data=data)

    @property
    def message(self) -> str | None:
        return self.data.get("message") if self.success else self.error

    def effects_of(self, effect_type: EffectType) -> list[Effect]:
        return [e for e in self.effects if e.effect_type == effect_type]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if not self.success:
            payload["error"] = self.error
            payload["error_code"] = self.error_code.value if self.error_code else None
        payload["effects"] = [e.to_dict() for e in self.effects]
        payload.update(self.data)
        return payload
