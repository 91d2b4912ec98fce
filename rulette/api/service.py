"""
API Service - Business logic layer between the HTTP API and the engine.

The service:
1. Translates API requests to GameManager calls
2. Converts ActionResults into ActionResponse / ErrorResponse
3. Builds session snapshots for clients

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
"""

from __future__ import annotations
from dataclasses import dataclass, field

from .schemas import (
    # Requests
    ActivatePromptRequest,
    AdjudicateRequest,
    CalloutRequest,
    CardInput,
    CloneCardRequest,
    CreateSessionRequest,
    DrawCardRequest,
    EndGameRequest,
    FlipCardRequest,
    JoinSessionRequest,
    JudgePromptRequest,
    PlayerRequest,
    StartGameRequest,
    SwapCardsRequest,
    SwapRefereeRequest,
    TransferCardRequest,
    # Responses
    ActionResponse,
    ErrorResponse,
    SessionListResponse,
    SessionResponse,
    # Shared
    EffectInfo,
    PlayerInfo,
)
from ..engine_core.action import ActionResult, ErrorCode
from ..engine_core.errors import RuletteError
from ..engine_core.state import Card
from ..session import GameManager


@dataclass
class APIService:
    """
    Main API service for game clients.

    Usage:
        service = APIService()

        # Create session
        session = await service.create_session(CreateSessionRequest(...))

        # Call out a player
        response = await service.initiate_callout(session_id, CalloutRequest(...))
    """
    manager: GameManager = field(default_factory=GameManager)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(
        self, request: CreateSessionRequest
    ) -> SessionResponse | ErrorResponse:
        try:
            session = await self.manager.create_session(request.host_id, request.display_name)
        except RuletteError as exc:
            return ErrorResponse(error=str(exc), error_code=ErrorCode(exc.error_code))
        return self._session_to_response(session.session_id)

    def get_session(self, session_id: str) -> SessionResponse | ErrorResponse:
        if self.manager.get_session(session_id) is None:
            return self._not_found()
        return self._session_to_response(session_id)

    def list_sessions(self) -> SessionListResponse:
        ids = [session.session_id for session in self.manager.list_sessions()]
        return SessionListResponse(sessions=ids, count=len(ids))

    async def join_session(
        self, session_id_or_code: str, request: JoinSessionRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.join_session(
            session_id_or_code, request.player_id, request.display_name
        )
        return self._to_response(result)

    async def leave_session(
        self, session_id: str, request: PlayerRequest
    ) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.leave_session(session_id, request.player_id))

    async def disconnect_player(
        self, session_id: str, request: PlayerRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.handle_player_disconnect(session_id, request.player_id)
        return self._to_response(result)

    async def start_game(
        self, session_id: str, request: StartGameRequest
    ) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.start_game(session_id, request.host_id))

    async def end_game(
        self, session_id: str, request: EndGameRequest
    ) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.end_game(session_id, request.end_condition))

    # =========================================================================
    # Turns
    # =========================================================================

    async def spin(self, session_id: str, request: PlayerRequest) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.spin(session_id, request.player_id))

    async def next_turn(self, session_id: str) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.next_turn(session_id))

    async def draw_card(
        self, session_id: str, request: DrawCardRequest
    ) -> ActionResponse | ErrorResponse:
        card = self._card_from_input(request.card)
        return self._to_response(await self.manager.draw_card(session_id, request.player_id, card))

    # =========================================================================
    # Referee & callouts
    # =========================================================================

    async def swap_referee(
        self, session_id: str, request: SwapRefereeRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.swap_referee_role(
            session_id, request.current_referee_id, request.new_referee_id
        )
        return self._to_response(result)

    async def initiate_callout(
        self, session_id: str, request: CalloutRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.initiate_callout(
            session_id, request.caller_id, request.accused_player_id, request.rule_violated
        )
        return self._to_response(result)

    async def adjudicate_callout(
        self, session_id: str, request: AdjudicateRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.adjudicate_callout(
            session_id, request.referee_id, request.is_valid, request.callout_id
        )
        return self._to_response(result)

    # =========================================================================
    # Cards
    # =========================================================================

    async def transfer_card(
        self, session_id: str, request: TransferCardRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.transfer_card(
            session_id, request.from_player_id, request.to_player_id, request.card_id
        )
        return self._to_response(result)

    async def swap_cards(
        self, session_id: str, request: SwapCardsRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.swap_cards(
            session_id,
            request.player_a_id,
            request.player_b_id,
            request.card_a_id,
            request.card_b_id,
        )
        return self._to_response(result)

    async def clone_card(
        self, session_id: str, request: CloneCardRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.clone_card(
            session_id, request.player_id, request.target_player_id, request.target_card_id
        )
        return self._to_response(result)

    async def flip_card(
        self, session_id: str, request: FlipCardRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.flip_card(session_id, request.player_id, request.card_id)
        return self._to_response(result)

    async def remove_card(
        self, session_id: str, player_id: str, card_id: str
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.remove_card_from_player(session_id, player_id, card_id)
        return self._to_response(result)

    # =========================================================================
    # Prompts
    # =========================================================================

    async def activate_prompt(
        self, session_id: str, request: ActivatePromptRequest
    ) -> ActionResponse | ErrorResponse:
        card = self._card_from_input(request.card)
        result = await self.manager.activate_prompt(
            session_id, request.player_id, card, request.time_limit
        )
        return self._to_response(result)

    async def complete_prompt(
        self, session_id: str, request: PlayerRequest
    ) -> ActionResponse | ErrorResponse:
        return self._to_response(await self.manager.complete_prompt(session_id, request.player_id))

    async def judge_prompt(
        self, session_id: str, request: JudgePromptRequest
    ) -> ActionResponse | ErrorResponse:
        result = await self.manager.judge_prompt(session_id, request.referee_id, request.successful)
        return self._to_response(result)

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _not_found(self) -> ErrorResponse:
        return ErrorResponse(
            error="Game session not found.",
            error_code=ErrorCode.SESSION_NOT_FOUND,
        )

    def _to_response(self, result: ActionResult) -> ActionResponse | ErrorResponse:
        """Convert an ActionResult to an API response."""
        if not result.success:
            return ErrorResponse(
                error=result.error or "Action failed",
                error_code=result.error_code or ErrorCode.INTERNAL_ERROR,
            )
        data = dict(result.data)
        message = data.pop("message", None)
        return ActionResponse(
            success=True,
            message=message,
            effects=[EffectInfo(**effect.to_dict()) for effect in result.effects],
            data=data,
        )

    def _card_from_input(self, card: CardInput) -> Card:
        return Card.create(
            card.type,
            card.front_rule,
            card.back_rule,
            id=card.id,
            name=card.name,
            point_value=card.point_value,
            rules_for_referee=card.rules_for_referee,
            discard_rule_on_success=card.discard_rule_on_success,
        )

    def _session_to_response(self, session_id: str) -> SessionResponse:
        """Convert a session snapshot to SessionResponse."""
        state = self.manager.get_session_state(session_id)
        current_player = (state["turn"] or {}).get("current_player_id")
        players = [
            PlayerInfo(**record, is_current_turn=record["player_id"] == current_player)
            for record in state["player_records"]
        ]
        return SessionResponse(
            session_id=state["session_id"],
            shareable_code=state["shareable_code"],
            host_id=state["host_id"],
            status=state["status"],
            referee=state["referee"],
            max_players=state["max_players"],
            players=players,
            turn=state["turn"],
            current_callout=state["current_callout"],
            callout_history=state["callout_history"],
            active_prompt=state["active_prompt"],
            results=state["results"],
            created_at=state["created_at"],
        )
