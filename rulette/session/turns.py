"""
Turn Manager - Turn order, current player and the one-spin-per-turn flag.

Turn state is pure bookkeeping here; calling the rule engine when the
turn number changes is the game manager's job.
"""

from __future__ import annotations
from typing import Any
import logging

from ..engine_core.action import ErrorCode
from ..engine_core.state import PlayerStatus, TurnState
from .store import SessionStore


logger = logging.getLogger(__name__)


class TurnManager:
    """Per-session turn sequencing over a SessionStore."""

    def __init__(self, store: SessionStore):
        self.store = store

    def initialize_turn_order(self, session_id: str, ordered_player_ids: list[str]) -> TurnState:
        turn = TurnState(order=list(ordered_player_ids))
        self.store.put_turn(session_id, turn)
        logger.debug("Turn order for %s: %s", session_id, turn.order)
        return turn

    def get_turn(self, session_id: str) -> TurnState | None:
        return self.store.get_turn(session_id)

    def get_current_player(self, session_id: str) -> str | None:
        turn = self.store.get_turn(session_id)
        return turn.current_player_id if turn else None

    def validate_player_action(self, session_id: str, player_id: str) -> ErrorCode | None:
        """Return the first failing precondition, or None if the player may act."""
        turn = self.store.get_turn(session_id)
        if turn is None:
            return ErrorCode.TURN_NOT_INITIALIZED
        player = self.store.get_player(player_id)
        if player is None:
            return ErrorCode.PLAYER_NOT_FOUND
        if not player.is_active:
            return ErrorCode.PLAYER_INACTIVE
        if turn.current_player_id != player_id:
            return ErrorCode.NOT_PLAYER_TURN
        if turn.has_spun:
            return ErrorCode.DUPLICATE_ACTION
        return None

    def can_player_act(self, session_id: str, player_id: str) -> bool:
        return self.validate_player_action(session_id, player_id) is None

    def record_player_spin(self, session_id: str, player_id: str) -> bool:
        if not self.can_player_act(session_id, player_id):
            return False
        self.store.get_turn(session_id).has_spun = True
        return True

    def next_turn(self, session_id: str) -> TurnState | None:
        """
        Advance to the next active player.

        Inactive seats are skipped, at most one full pass. turn_number goes
        up each time the index wraps to 0, including while skipping.
        """
        turn = self.store.get_turn(session_id)
        if turn is None or not turn.order:
            return None
        for _ in range(len(turn.order)):
            turn.advance()
            player = self.store.get_player(turn.current_player_id)
            if player is not None and player.is_active:
                break
        return turn

    def handle_player_disconnect(self, session_id: str, player_id: str) -> bool:
        """
        Mark a player disconnected.

        Returns True if it was their turn and the turn was forcibly advanced.
        """
        player = self.store.get_player(player_id)
        if player is None:
            return False
        player.status = PlayerStatus.DISCONNECTED
        if self.get_current_player(session_id) == player_id:
            self.next_turn(session_id)
            return True
        return False

    def get_turn_info(self, session_id: str) -> dict[str, Any] | None:
        turn = self.store.get_turn(session_id)
        if turn is None:
            return None
        info = turn.to_dict()
        current = self.store.get_player(turn.current_player_id) if turn.current_player_id else None
        info["current_player_name"] = current.display_name if current else None
        info["total_players"] = len(turn.order)
        return info

    def clear(self, session_id: str) -> None:
        self.store.delete_turn(session_id)
