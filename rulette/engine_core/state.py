"""
Game State - Cards, players, sessions and the callout state machine.

Design principles:
- Mutable aggregates: one Session plus its Players is owned by one
  logical actor, so records are updated in place under the session lock
- Serializable: every record has to_dict() for the persistence mirror
- Explicit transitions: session status and callout status only move
  through the methods defined here
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import time
import uuid

from .errors import InvalidTransition


class SessionStatus(str, Enum):
    """Lifecycle of a game session."""
    LOBBY = "lobby"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


# Allowed session status moves
SESSION_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.LOBBY: {SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.LOBBY},
    SessionStatus.COMPLETED: {SessionStatus.LOBBY},
}


class PlayerStatus(str, Enum):
    """Connection status of a player."""
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    LEFT = "left"


class CardType(str, Enum):
    """Card types dealt by the wheel and decks."""
    RULE = "rule"
    MODIFIER = "modifier"
    PROMPT = "prompt"
    CLONE = "clone"
    FLIP = "flip"
    SWAP = "swap"
    ACTION = "action"
    REFEREE = "referee"


class CardSide(str, Enum):
    FRONT = "front"
    BACK = "back"


class CalloutStatus(str, Enum):
    """Callout states. PENDING is the only non-terminal one."""
    PENDING = "pending_referee_decision"
    VALID = "valid"
    INVALID = "invalid"
    CANCELLED = "cancelled"


class PromptStatus(str, Enum):
    ACTIVE = "active"
    AWAITING_JUDGMENT = "awaiting_judgment"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EndCondition(str, Enum):
    """Why a game ended."""
    ZERO_POINTS = "zero_points"
    LAST_PLAYER_STANDING = "last_player_standing"
    NO_ACTIVE_PLAYERS = "no_active_players"
    MAX_TURNS = "max_turns"
    MANUAL_END = "manual_end"


# Card types whose text can act as an active rule
RULE_BEARING_TYPES = {CardType.RULE, CardType.MODIFIER}


def new_card_id() -> str:
    return f"card_{uuid.uuid4().hex[:12]}"


@dataclass
class CloneSource:
    """Back-reference from a clone to the card it was copied from."""
    card_id: str
    owner_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"card_id": self.card_id, "owner_id": self.owner_id}


@dataclass
class Card:
    """
    A card instance held in a player's hand.

    Rule and modifier cards carry two sides of rule text; prompt cards only
    have a front. A clone is its own card with its own id and a
    clone_source pointing at the card it copied.
    """
    id: str
    type: CardType
    front_rule: str | None = None
    back_rule: str | None = None
    name: str | None = None

    current_side: CardSide = CardSide.FRONT
    is_flipped: bool = False

    is_clone: bool = False
    clone_source: CloneSource | None = None

    # Prompt cards
    point_value: int = 1
    rules_for_referee: str | None = None
    discard_rule_on_success: bool = False

    @classmethod
    def create(
        cls,
        card_type: CardType | str,
        side_a: str | None = None,
        side_b: str | None = None,
        **kwargs: Any,
    ) -> Card:
        """Factory that allocates a fresh id. side_a/side_b map to front/back."""
        return cls(
            id=kwargs.pop("id", None) or new_card_id(),
            type=CardType(card_type),
            front_rule=side_a,
            back_rule=side_b,
            **kwargs,
        )

    @property
    def side_a(self) -> str | None:
        return self.front_rule

    @property
    def side_b(self) -> str | None:
        return self.back_rule

    @property
    def current_text(self) -> str | None:
        if self.current_side == CardSide.FRONT:
            return self.front_rule
        return self.back_rule

    @property
    def has_back_side(self) -> bool:
        return bool(self.back_rule)

    @property
    def can_flip(self) -> bool:
        return self.type != CardType.PROMPT and self.has_back_side

    def flip(self) -> bool:
        """Turn the card over. Returns False for prompts and one-sided cards."""
        if not self.can_flip:
            return False
        self.current_side = CardSide.BACK if self.current_side == CardSide.FRONT else CardSide.FRONT
        self.is_flipped = self.current_side == CardSide.BACK
        return True

    def create_clone(self, owner_id: str) -> Card:
        """
        Copy this card into a new, independent card.

        The clone starts on the same side as the source; after that the
        two never share state.
        """
        return Card(
            id=f"{self.id}-clone-{uuid.uuid4().hex[:8]}",
            type=self.type,
            front_rule=self.front_rule,
            back_rule=self.back_rule,
            name=self.name,
            current_side=self.current_side,
            is_flipped=self.is_flipped,
            is_clone=True,
            clone_source=CloneSource(card_id=self.id, owner_id=owner_id),
            point_value=self.point_value,
            rules_for_referee=self.rules_for_referee,
            discard_rule_on_success=self.discard_rule_on_success,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "front_rule": self.front_rule,
            "back_rule": self.back_rule,
            "current_side": self.current_side.value,
            "current_text": self.current_text,
            "is_flipped": self.is_flipped,
            "is_clone": self.is_clone,
            "clone_source": self.clone_source.to_dict() if self.clone_source else None,
            "point_value": self.point_value,
        }


@dataclass
class Player:
    """A participant. Session membership is tracked on the Session."""
    player_id: str
    display_name: str
    points: int = 20
    status: PlayerStatus = PlayerStatus.ACTIVE
    has_referee_card: bool = False
    hand: list[Card] = field(default_factory=list)
    session_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == PlayerStatus.ACTIVE

    def find_card(self, card_id: str) -> Card | None:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def pop_card(self, card_id: str) -> Card | None:
        """Remove and return a card from the hand, or None if absent."""
        for index, card in enumerate(self.hand):
            if card.id == card_id:
                return self.hand.pop(index)
        return None

    def deduct_points(self, amount: int) -> int:
        """Take up to `amount` points, never going below zero. Returns points taken."""
        taken = max(0, min(amount, self.points))
        self.points -= taken
        return taken

    def award_points(self, amount: int) -> None:
        self.points += max(0, amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "display_name": self.display_name,
            "points": self.points,
            "status": self.status.value,
            "has_referee_card": self.has_referee_card,
            "hand": [card.to_dict() for card in self.hand],
        }


@dataclass
class RefereeDecision:
    referee_id: str
    decision: CalloutStatus
    timestamp: float


@dataclass
class Callout:
    """
    An accusation awaiting (or past) a referee decision.

    PENDING -> VALID | INVALID. Terminal states never change again.
    """
    caller_id: str
    accused_player_id: str
    timestamp: float
    callout_id: str = field(default_factory=lambda: f"callout_{uuid.uuid4().hex[:12]}")
    status: CalloutStatus = CalloutStatus.PENDING
    rule_violated: str | None = None
    referee_decision: RefereeDecision | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == CalloutStatus.PENDING and self.referee_decision is None

    def cancel(self) -> None:
        """Withdraw a pending callout that will never be decided."""
        if not self.is_pending:
            raise InvalidTransition(
                "This callout has already been decided.",
                error_code="CALLOUT_ALREADY_DECIDED",
            )
        self.status = CalloutStatus.CANCELLED

    def resolve(self, referee_id: str, is_valid: bool, timestamp: float) -> None:
        """Record the referee's decision."""
        if not self.is_pending:
            raise InvalidTransition(
                "This callout has already been decided.",
                error_code="CALLOUT_ALREADY_DECIDED",
            )
        self.status = CalloutStatus.VALID if is_valid else CalloutStatus.INVALID
        self.referee_decision = RefereeDecision(
            referee_id=referee_id,
            decision=self.status,
            timestamp=timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        decision = None
        if self.referee_decision:
            decision = {
                "referee_id": self.referee_decision.referee_id,
                "decision": self.referee_decision.decision.value,
                "timestamp": self.referee_decision.timestamp,
            }
        return {
            "callout_id": self.callout_id,
            "caller_id": self.caller_id,
            "accused_player_id": self.accused_player_id,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "rule_violated": self.rule_violated,
            "referee_decision": decision,
        }


@dataclass
class TurnState:
    """
    Turn order for one session.

    turn_number counts full rounds: it goes up exactly when the
    index wraps back to the first player.
    """
    order: list[str]
    current_player_index: int = 0
    turn_number: int = 1
    has_spun: bool = False

    @property
    def current_player_id(self) -> str | None:
        if not self.order:
            return None
        return self.order[self.current_player_index]

    def advance(self) -> bool:
        """Move to the next seat. Returns True if the round wrapped."""
        if not self.order:
            return False
        self.current_player_index = (self.current_player_index + 1) % len(self.order)
        self.has_spun = False
        if self.current_player_index == 0:
            self.turn_number += 1
            return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "current_player_index": self.current_player_index,
            "current_player_id": self.current_player_id,
            "turn_number": self.turn_number,
            "has_spun": self.has_spun,
        }


@dataclass
class CloneRef:
    owner_id: str
    clone_id: str


@dataclass
class CloneMap:
    """Source card id -> clones made directly from it."""
    entries: dict[str, list[CloneRef]] = field(default_factory=dict)

    def register(self, source_id: str, owner_id: str, clone_id: str) -> None:
        self.entries.setdefault(source_id, []).append(CloneRef(owner_id=owner_id, clone_id=clone_id))

    def clones_of(self, source_id: str) -> list[CloneRef]:
        return list(self.entries.get(source_id, []))

    def detach(self, source_id: str, clone_id: str) -> None:
        """Drop one clone from its source entry, removing the entry when empty."""
        refs = self.entries.get(source_id)
        if refs is None:
            return
        self.entries[source_id] = [ref for ref in refs if ref.clone_id != clone_id]
        if not self.entries[source_id]:
            del self.entries[source_id]

    def drop(self, source_id: str) -> None:
        self.entries.pop(source_id, None)

    def update_owner(self, clone_id: str, owner_id: str) -> None:
        for refs in self.entries.values():
            for ref in refs:
                if ref.clone_id == clone_id:
                    ref.owner_id = owner_id


@dataclass
class PromptState:
    """A running prompt challenge. The timer handle belongs to the session."""
    player_id: str
    card: Card
    started_at: float
    time_limit: float
    status: PromptStatus = PromptStatus.ACTIVE
    timer: Any | None = None  # asyncio.TimerHandle

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "card": self.card.to_dict(),
            "started_at": self.started_at,
            "time_limit": self.time_limit,
            "status": self.status.value,
        }


@dataclass
class PlayerStanding:
    player_id: str
    display_name: str
    points: int


@dataclass
class GameResults:
    end_condition: EndCondition
    final_standings: list[PlayerStanding]
    winners: list[str]
    total_players: int
    turns_played: int
    total_points_transferred: int
    game_duration: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "end_condition": self.end_condition.value,
            "final_standings": [
                {"player_id": s.player_id, "display_name": s.display_name, "points": s.points}
                for s in self.final_standings
            ],
            "winners": list(self.winners),
            "total_players": self.total_players,
            "turns_played": self.turns_played,
            "total_points_transferred": self.total_points_transferred,
            "game_duration": self.game_duration,
        }


@dataclass
class Session:
    """
    One running game.

    `players` is the single source of truth for membership. At most one
    callout is pending at a time and it lives in `current_callout`.
    """
    session_id: str
    host_id: str
    shareable_code: str = ""
    players: list[str] = field(default_factory=list)
    status: SessionStatus = SessionStatus.LOBBY
    referee: str | None = None
    initial_referee_card: Card | None = None
    current_callout: Callout | None = None
    callout_history: list[Callout] = field(default_factory=list)
    clone_map: CloneMap = field(default_factory=CloneMap)
    active_prompt: PromptState | None = None
    max_players: int = 6
    total_points_transferred: int = 0
    results: GameResults | None = None
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    ended_at: float | None = None

    @property
    def pending_callout(self) -> Callout | None:
        """The pending callout, if there is one."""
        if self.current_callout is not None and self.current_callout.is_pending:
            return self.current_callout
        return None

    @property
    def has_pending_callout(self) -> bool:
        return self.pending_callout is not None

    def is_member(self, player_id: str) -> bool:
        return player_id in self.players

    def add_member(self, player_id: str) -> None:
        if player_id not in self.players:
            self.players.append(player_id)

    def transition_to(self, new_status: SessionStatus) -> SessionStatus:
        """Move to a new status. Returns the old one."""
        if new_status not in SESSION_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        old = self.status
        self.status = new_status
        return old

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "host_id": self.host_id,
            "shareable_code": self.shareable_code,
            "players": list(self.players),
            "status": self.status.value,
            "referee": self.referee,
            "current_callout": self.current_callout.to_dict() if self.current_callout else None,
            "callout_history": [c.to_dict() for c in self.callout_history],
            "max_players": self.max_players,
            "created_at": self.created_at,
        }
