"""
Referee Manager - Who holds the referee card.

Assignment draws one uniform number and picks floor(U * n) from the
active roster. A swap is refused while a callout waits for a decision,
since the pending callout is addressed to the current referee.
"""

from __future__ import annotations
from typing import Any
import logging

from ..engine_core.action import ActionResult, Effect, EffectType, ErrorCode
from ..engine_core.state import Card, PlayerStatus, Session
from ..engine_core.timing import RandomSource, pick_index
from .store import SessionStore


logger = logging.getLogger(__name__)


class RefereeManager:

    def __init__(self, store: SessionStore, rng: RandomSource):
        self.store = store
        self.rng = rng

    def assign_referee_card(
        self,
        session: Session,
        roster: list[dict[str, Any]],
        referee_card: Card | None = None,
    ) -> str | None:
        """
        Give the referee card to a random active player from `roster`.

        Rows for players this server has no record of, or who are not
        members of `session`, are skipped. Returns the chosen player id, or
        None (and changes nothing) when no eligible row is active.
        """
        active = [
            row for row in roster
            if row.get("status") == PlayerStatus.ACTIVE.value
            and self._is_local_member(session, row.get("uid"))
        ]
        if not active:
            logger.info("No active players to receive the referee card in %s", session.session_id)
            return None

        self._clear_holder(session)
        chosen_id = active[pick_index(self.rng, len(active))]["uid"]
        self.store.get_player(chosen_id).has_referee_card = True
        session.referee = chosen_id
        session.initial_referee_card = referee_card
        logger.info("Referee for %s is %s", session.session_id, chosen_id)
        return chosen_id

    def swap_referee_role(
        self,
        session: Session,
        current_referee_id: str,
        new_referee_id: str | None = None,
    ) -> ActionResult:
        if session.has_pending_callout:
            return ActionResult.failure(
                "Cannot swap referee while a callout is pending decision",
                ErrorCode.CALLOUT_PENDING,
            )
        if session.referee != current_referee_id:
            return ActionResult.failure(
                "Only the current referee can hand over the referee role.",
                ErrorCode.NOT_CURRENT_REFEREE,
            )

        if new_referee_id is None:
            candidates = [
                p for p in self.store.active_players_of(session)
                if p.player_id != current_referee_id
            ]
            if not candidates:
                return ActionResult.failure(
                    "No other active players can become referee.",
                    ErrorCode.NO_AVAILABLE_PLAYERS,
                )
            new_referee = candidates[pick_index(self.rng, len(candidates))]
        else:
            new_referee = self.store.get_player(new_referee_id)
            if new_referee is None or not session.is_member(new_referee_id):
                return ActionResult.failure(
                    "Target player is not in this game session.",
                    ErrorCode.TARGET_NOT_FOUND,
                )
            if not new_referee.is_active:
                return ActionResult.failure(
                    "Target player is not active.",
                    ErrorCode.PLAYER_INACTIVE,
                )

        old_referee = self.store.get_player(current_referee_id)
        effects = []
        if old_referee is not None:
            old_referee.has_referee_card = False
            card = session.initial_referee_card
            if card is not None and old_referee.pop_card(card.id) is not None:
                new_referee.hand.append(card)
                effects.append(Effect(
                    EffectType.CARD_MOVED,
                    player_id=old_referee.player_id,
                    target_player_id=new_referee.player_id,
                    card_id=card.id,
                ))
        new_referee.has_referee_card = True
        session.referee = new_referee.player_id
        effects.append(Effect(
            EffectType.REFEREE_CHANGED,
            player_id=current_referee_id,
            target_player_id=new_referee.player_id,
        ))
        logger.info(
            "Referee in %s passed from %s to %s",
            session.session_id, current_referee_id, new_referee.player_id,
        )
        return ActionResult.ok(
            effects,
            previous_referee=current_referee_id,
            new_referee=new_referee.player_id,
        )

    def _is_local_member(self, session: Session, player_id: str | None) -> bool:
        if player_id is None or not session.is_member(player_id):
            return False
        return self.store.get_player(player_id) is not None

    def _clear_holder(self, session: Session) -> None:
        if session.referee is None:
            return
        previous = self.store.get_player(session.referee)
        if previous is not None:
            previous.has_referee_card = False
