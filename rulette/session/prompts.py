"""
Prompt Manager - Timed prompt-card challenges judged by the referee.

PROMPT FLOW:
1. A player activates a prompt card; a timer starts
2. The player finishes (or the timer runs out) -> awaiting_judgment
3. The referee rules success or failure; success awards the card's points

The timer is an asyncio TimerHandle stored on the session's PromptState
and cancelled whenever the prompt ends early.
"""

from __future__ import annotations
from typing import Callable
import asyncio
import logging

from ..config import EngineConfig
from ..engine_core.action import ActionResult, Effect, EffectType, ErrorCode
from ..engine_core.state import Card, CardType, PromptState, PromptStatus, RULE_BEARING_TYPES, Session
from ..engine_core.timing import Clock
from .store import SessionStore


logger = logging.getLogger(__name__)


class PromptManager:

    def __init__(self, store: SessionStore, clock: Clock, config: EngineConfig):
        self.store = store
        self.clock = clock
        self.config = config

    def activate_prompt(
        self,
        session: Session,
        player_id: str,
        card: Card,
        time_limit: float | None = None,
        on_timeout: Callable[[], None] | None = None,
    ) -> ActionResult:
        if card.type != CardType.PROMPT:
            return ActionResult.failure(
                "Only prompt cards can start a prompt challenge.", ErrorCode.INVALID_CARD_TYPE
            )
        if not session.is_member(player_id) or self.store.get_player(player_id) is None:
            return ActionResult.failure(
                "Player is not in this game session.", ErrorCode.PLAYER_NOT_FOUND
            )
        if session.active_prompt is not None:
            return ActionResult.failure(
                "Another prompt is already in progress.", ErrorCode.PROMPT_ACTIVE
            )

        limit = self.config.prompt_time_limit_seconds if time_limit is None else time_limit
        prompt = PromptState(
            player_id=player_id,
            card=card,
            started_at=self.clock.now(),
            time_limit=limit,
        )
        if on_timeout is not None:
            prompt.timer = asyncio.get_running_loop().call_later(limit, on_timeout)
        session.active_prompt = prompt
        logger.info("Prompt %s started for %s (%ss)", card.id, player_id, limit)
        return ActionResult.ok(
            [Effect(
                EffectType.PROMPT_STARTED,
                player_id=player_id,
                card_id=card.id,
                data={"time_limit": limit, "rules_for_referee": card.rules_for_referee},
            )],
            prompt=prompt.to_dict(),
        )

    def complete_prompt(self, session: Session, player_id: str) -> ActionResult:
        prompt = session.active_prompt
        if prompt is None:
            return ActionResult.failure("No prompt is in progress.", ErrorCode.NO_ACTIVE_PROMPT)
        if prompt.player_id != player_id:
            return ActionResult.failure(
                "Only the prompted player can complete the prompt.", ErrorCode.NOT_PROMPT_PLAYER
            )
        if prompt.status != PromptStatus.ACTIVE:
            return ActionResult.failure(
                "The prompt is already waiting for the referee.", ErrorCode.INVALID_TRANSITION
            )
        prompt.cancel_timer()
        prompt.status = PromptStatus.AWAITING_JUDGMENT
        return ActionResult.ok(
            [Effect(EffectType.PROMPT_COMPLETED, player_id=player_id, card_id=prompt.card.id)],
            prompt=prompt.to_dict(),
        )

    def handle_prompt_timeout(self, session: Session) -> ActionResult:
        prompt = session.active_prompt
        if prompt is None or prompt.status != PromptStatus.ACTIVE:
            return ActionResult.failure("No running prompt to time out.", ErrorCode.NO_ACTIVE_PROMPT)
        prompt.timer = None
        prompt.status = PromptStatus.AWAITING_JUDGMENT
        logger.info("Prompt %s timed out for %s", prompt.card.id, prompt.player_id)
        return ActionResult.ok(
            [Effect(EffectType.PROMPT_TIMED_OUT, player_id=prompt.player_id, card_id=prompt.card.id)],
            prompt=prompt.to_dict(),
        )

    def judge_prompt(self, session: Session, referee_id: str, successful: bool) -> ActionResult:
        if session.referee != referee_id:
            return ActionResult.failure(
                "Only the referee can judge prompts.", ErrorCode.NOT_REFEREE
            )
        prompt = session.active_prompt
        if prompt is None:
            return ActionResult.failure("No prompt is in progress.", ErrorCode.NO_ACTIVE_PROMPT)

        prompt.cancel_timer()
        prompt.status = PromptStatus.SUCCEEDED if successful else PromptStatus.FAILED
        session.active_prompt = None

        player = self.store.get_player(prompt.player_id)
        effects = [Effect(
            EffectType.PROMPT_JUDGED,
            player_id=prompt.player_id,
            card_id=prompt.card.id,
            data={"successful": successful},
        )]
        points_awarded = 0
        discard_options: list[dict] = []
        if successful and player is not None:
            points_awarded = prompt.card.point_value or 1
            player.award_points(points_awarded)
            effects.append(Effect(
                EffectType.POINTS_CHANGED,
                player_id=player.player_id,
                data={"delta": points_awarded, "points": player.points},
            ))
            if prompt.card.discard_rule_on_success:
                discard_options = [
                    card.to_dict() for card in player.hand if card.type in RULE_BEARING_TYPES
                ]

        return ActionResult.ok(
            effects,
            prompt=prompt.to_dict(),
            points_awarded=points_awarded,
            discard_options=discard_options,
        )

    def cancel(self, session: Session) -> None:
        if session.active_prompt is not None:
            session.active_prompt.cancel_timer()
            session.active_prompt = None
