"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between game clients and the engine.
Every failed action is reported as an ErrorResponse carrying one of the
engine's ErrorCode values, for example:
- SESSION_NOT_FOUND: Session does not exist or was cleaned up
- CALLOUT_COOLDOWN: Caller must wait before another callout
- NOT_REFEREE: Only the referee may make this decision
- CLONE_CHAIN_LIMIT_EXCEEDED: Card is already a clone of a clone of a clone
"""

from typing import Optional, Any
from pydantic import BaseModel, Field, model_validator

from ..engine_core.action import ErrorCode
from ..engine_core.state import CardType, EndCondition, PlayerStatus, SessionStatus


# =============================================================================
# Shared Models
# =============================================================================

class CardInput(BaseModel):
    """A card supplied by the client (drawn from a deck, prompt to run)."""
    id: Optional[str] = Field(None, description="Card id; generated when omitted")
    type: CardType
    front_rule: Optional[str] = Field(None, description="Front text (alias: side_a)")
    back_rule: Optional[str] = Field(None, description="Back text (alias: side_b)")
    side_a: Optional[str] = None
    side_b: Optional[str] = None
    name: Optional[str] = None
    point_value: int = Field(1, ge=0)
    rules_for_referee: Optional[str] = None
    discard_rule_on_success: bool = False

    @model_validator(mode="after")
    def _apply_side_aliases(self):
        if self.front_rule is None and self.side_a is not None:
            self.front_rule = self.side_a
        if self.back_rule is None and self.side_b is not None:
            self.back_rule = self.side_b
        return self


class CloneSourceInfo(BaseModel):
    card_id: str
    owner_id: str

    model_config = {"from_attributes": True}


class CardInfo(BaseModel):
    """Card as held in a hand."""
    id: str
    type: CardType
    name: Optional[str] = None
    front_rule: Optional[str] = None
    back_rule: Optional[str] = None
    current_side: str = "front"
    current_text: Optional[str] = None
    is_flipped: bool = False
    is_clone: bool = False
    clone_source: Optional[CloneSourceInfo] = None
    point_value: int = 1

    model_config = {"from_attributes": True}


class PlayerInfo(BaseModel):
    """Player information for display."""
    player_id: str
    display_name: str
    points: int
    status: PlayerStatus
    has_referee_card: bool = False
    is_current_turn: bool = False
    hand: list[CardInfo] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class RefereeDecisionInfo(BaseModel):
    referee_id: str
    decision: str
    timestamp: float


class CalloutInfo(BaseModel):
    """A callout and (once made) the referee's decision."""
    callout_id: str
    caller_id: str
    accused_player_id: str
    timestamp: float
    status: str = Field(description="pending_referee_decision, valid, invalid, cancelled")
    rule_violated: Optional[str] = None
    referee_decision: Optional[RefereeDecisionInfo] = None


class TurnInfo(BaseModel):
    order: list[str]
    current_player_index: int
    current_player_id: Optional[str] = None
    current_player_name: Optional[str] = None
    turn_number: int
    has_spun: bool
    total_players: int = 0


class PromptInfo(BaseModel):
    player_id: str
    card: CardInfo
    started_at: float
    time_limit: float
    status: str = Field(description="active, awaiting_judgment, succeeded, failed")


class StandingInfo(BaseModel):
    player_id: str
    display_name: str
    points: int


class GameResultsInfo(BaseModel):
    """Final results of a completed game."""
    end_condition: EndCondition
    final_standings: list[StandingInfo]
    winners: list[str]
    total_players: int
    turns_played: int
    total_points_transferred: int
    game_duration: float


class EffectInfo(BaseModel):
    """One state change caused by an action."""
    type: str
    player_id: Optional[str] = None
    target_player_id: Optional[str] = None
    card_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Request to create a new session."""
    host_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=40)


class JoinSessionRequest(BaseModel):
    player_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=40)


class PlayerRequest(BaseModel):
    """Request naming the acting player (leave, spin, disconnect, complete prompt)."""
    player_id: str = Field(min_length=1)


class StartGameRequest(BaseModel):
    host_id: str


class EndGameRequest(BaseModel):
    end_condition: EndCondition = EndCondition.MANUAL_END


class DrawCardRequest(BaseModel):
    player_id: str
    card: CardInput


class CalloutRequest(BaseModel):
    """Request to call out a player for breaking a rule."""
    caller_id: str
    accused_player_id: str
    rule_violated: Optional[str] = None


class AdjudicateRequest(BaseModel):
    """The referee's ruling on the pending callout."""
    referee_id: str
    is_valid: bool
    callout_id: Optional[str] = None


class SwapRefereeRequest(BaseModel):
    current_referee_id: str
    new_referee_id: Optional[str] = Field(None, description="Random active player when omitted")


class TransferCardRequest(BaseModel):
    from_player_id: str
    to_player_id: str
    card_id: str


class SwapCardsRequest(BaseModel):
    player_a_id: str
    player_b_id: str
    card_a_id: str
    card_b_id: str


class CloneCardRequest(BaseModel):
    player_id: str
    target_player_id: str
    target_card_id: str


class FlipCardRequest(BaseModel):
    player_id: str
    card_id: str


class ActivatePromptRequest(BaseModel):
    player_id: str
    card: CardInput
    time_limit: Optional[float] = Field(None, gt=0, description="Seconds; server default when omitted")


class JudgePromptRequest(BaseModel):
    referee_id: str
    successful: bool


# =============================================================================
# Response Models
# =============================================================================

class SessionResponse(BaseModel):
    """Full session snapshot."""
    session_id: str
    shareable_code: str
    host_id: str
    status: SessionStatus
    referee: Optional[str] = None
    max_players: int
    players: list[PlayerInfo] = Field(default_factory=list)
    turn: Optional[TurnInfo] = None
    current_callout: Optional[CalloutInfo] = None
    callout_history: list[CalloutInfo] = Field(default_factory=list)
    active_prompt: Optional[PromptInfo] = None
    results: Optional[GameResultsInfo] = None
    created_at: float

    api_version: str = "v1"


class ActionResponse(BaseModel):
    """Response for a successful action."""
    success: bool = True
    message: Optional[str] = None
    effects: list[EffectInfo] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)

    api_version: str = "v1"


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    error_code: ErrorCode
    details: Optional[dict[str, Any]] = None


class SessionListResponse(BaseModel):
    """Response listing sessions."""
    sessions: list[str]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
