"""
Mirror Sync - Pushes ActionResult effects to the persistence mirror.

Runs after the in-memory mutation is complete. Each mirror call is
independent: a failure is logged and the remaining effects are still
pushed. Local state is never rolled back.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Any, Awaitable, Callable
import logging

from ..engine_core.action import Effect, EffectType, HAND_EFFECTS
from .persistence import PersistenceMirror

if TYPE_CHECKING:
    from ..session.store import SessionStore


logger = logging.getLogger(__name__)


class MirrorSync:

    def __init__(self, mirror: PersistenceMirror, store: SessionStore):
        self.mirror = mirror
        self.store = store

    async def push(self, session_id: str, effects: list[Effect]) -> int:
        """Mirror a batch of effects. Returns the number of failed calls."""
        failures = 0
        hands_to_sync: list[str] = []
        for effect in effects:
            if effect.effect_type in HAND_EFFECTS:
                for player_id in (effect.player_id, effect.target_player_id):
                    if player_id and player_id not in hands_to_sync:
                        hands_to_sync.append(player_id)
                continue
            handler = self._get_handler(effect.effect_type)
            if handler is None:
                continue
            if not await self.guarded(effect.effect_type.value, handler(session_id, effect)):
                failures += 1

        for player_id in hands_to_sync:
            player = self.store.get_player(player_id)
            if player is None:
                continue
            hand = [card.to_dict() for card in player.hand]
            if not await self.guarded(
                "update_player_hand",
                self.mirror.update_player_hand(session_id, player_id, hand),
            ):
                failures += 1
        return failures

    async def guarded(self, label: str, call: Awaitable[Any]) -> bool:
        """Await one mirror call, logging instead of raising on failure."""
        try:
            await call
        except Exception:
            logger.warning("Mirror write %s failed", label, exc_info=True)
            return False
        return True

    def _get_handler(
        self, effect_type: EffectType
    ) -> Callable[[str, Effect], Awaitable[None]] | None:
        handlers = {
            EffectType.SESSION_CREATED: self._session_created,
            EffectType.PLAYER_JOINED: self._player_joined,
            EffectType.PLAYER_STATUS_CHANGED: self._player_status,
            EffectType.SESSION_STATUS_CHANGED: self._session_status,
            EffectType.POINTS_CHANGED: self._points,
            EffectType.REFEREE_CHANGED: self._referee,
        }
        return handlers.get(effect_type)

    async def _session_created(self, session_id: str, effect: Effect) -> None:
        await self.mirror.create_session(
            session_id, effect.player_id, effect.data.get("display_name", effect.player_id)
        )

    async def _player_joined(self, session_id: str, effect: Effect) -> None:
        await self.mirror.initialize_player(
            session_id,
            effect.player_id,
            effect.data.get("display_name", effect.player_id),
            effect.data.get("is_host", False),
        )
        session = self.store.get_session(session_id)
        if session is not None:
            await self.mirror.update_session_players(session_id, list(session.players))

    async def _player_status(self, session_id: str, effect: Effect) -> None:
        await self.mirror.update_player_status(session_id, effect.player_id, effect.data["status"])

    async def _session_status(self, session_id: str, effect: Effect) -> None:
        await self.mirror.update_session_status(session_id, effect.data["status"])

    async def _points(self, session_id: str, effect: Effect) -> None:
        await self.mirror.update_player_points(session_id, effect.player_id, effect.data["points"])

    async def _referee(self, session_id: str, effect: Effect) -> None:
        await self.mirror.update_referee_card(session_id, effect.target_player_id)
