"""
Game Manager - Root orchestrator for Rulette sessions.

LIFECYCLE:
1. Host creates a session (lobby) and shares its code
2. Players join while the session is in the lobby
3. Host starts the game -> in-progress: turn order fixed, referee drawn
4. During the game:
   - The current player spins and draws a card
   - Anyone (but the referee) can call out a rule breaker
   - The referee rules on the callout; a valid callout moves one point
   - Clone, flip and swap cards change hands and card sides
5. An end condition (or the host) ends the game -> completed

CONCURRENCY:
- Every mutating operation holds the session's asyncio.Lock
- In-memory state is fully updated before any mirror write
- Mirror and rule engine failures are logged and never roll back state

ERRORS:
- Operations return ActionResult; nothing raised inside escapes
- RuletteError becomes its error_code, anything else INTERNAL_ERROR
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable
import asyncio
import functools
import logging
import uuid

from ..config import EngineConfig
from ..engine_core.action import ActionResult, Effect, EffectType, ErrorCode
from ..engine_core.errors import PlayerInAnotherSession, RuletteError, SessionIdExhausted
from ..engine_core.state import (
    Callout,
    Card,
    CardType,
    EndCondition,
    Player,
    PlayerStatus,
    Session,
    SessionStatus,
    TurnState,
)
from ..engine_core.timing import Clock, RandomSource, SystemClock, build_rng
from ..integrations.persistence import InMemoryMirror, PersistenceMirror
from ..integrations.rule_engine import InMemoryRuleEngine, RuleEngine
from ..integrations.sync import MirrorSync
from .callouts import CalloutManager
from .cards import CardActions
from .endgame import compute_results, evaluate_end_condition
from .prompts import PromptManager
from .referee import RefereeManager
from .store import InMemorySessionStore, SessionStore
from .turns import TurnManager


logger = logging.getLogger(__name__)

SESSION_ID_ATTEMPTS = 5
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_id(now: float) -> tuple[str, str]:
    """Return (session_id, shareable_code) for a new session."""
    stamp = _base36(int(now * 1000))
    fragment = uuid.uuid4().hex[:9]
    return f"sess-{stamp}-{fragment}", (stamp[-3:] + fragment[:3]).upper()


def guarded(operation: Callable[..., Awaitable[ActionResult]]):
    """Convert exceptions raised by an operation into failed results."""

    @functools.wraps(operation)
    async def wrapper(self, *args, **kwargs) -> ActionResult:
        try:
            return await operation(self, *args, **kwargs)
        except RuletteError as exc:
            logger.debug("%s rejected: %s", operation.__name__, exc)
            return ActionResult.failure(str(exc), exc.error_code)
        except Exception:
            logger.exception("%s failed", operation.__name__)
            return ActionResult.failure(
                "An unexpected error occurred.", ErrorCode.INTERNAL_ERROR
            )

    return wrapper


def _session_not_found() -> ActionResult:
    return ActionResult.failure("Game session not found.", ErrorCode.SESSION_NOT_FOUND)


class GameManager:
    """
    Owns sessions and players through a SessionStore and composes the
    turn, referee, callout, card and prompt managers.

    Usage:
        manager = GameManager(config=EngineConfig.from_env())
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.shareable_code, "p2", "Bob")
        await manager.start_game(session.session_id, "host")
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        mirror: PersistenceMirror | None = None,
        rule_engine: RuleEngine | None = None,
        clock: Clock | None = None,
        rng: RandomSource | None = None,
        config: EngineConfig | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store or InMemorySessionStore()
        self.mirror = mirror if mirror is not None else InMemoryMirror()
        self.rule_engine = rule_engine if rule_engine is not None else InMemoryRuleEngine()
        self.clock = clock or SystemClock()
        self.rng = rng or build_rng()

        self.turns = TurnManager(self.store)
        self.referees = RefereeManager(self.store, self.rng)
        self.callouts = CalloutManager(self.store, self.clock, self.config)
        self.cards = CardActions(self.store, self.config)
        self.prompts = PromptManager(self.store, self.clock, self.config)
        self.sync = MirrorSync(self.mirror, self.store)

        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _rule_engine_call(self, label: str, call: Awaitable[Any]) -> Any:
        """Await a rule engine hook; failures are logged and yield None."""
        try:
            return await call
        except Exception:
            logger.warning("Rule engine %s failed", label, exc_info=True)
            return None

    async def _active_rule_texts(self, session_id: str) -> list[str]:
        rules = await self._rule_engine_call(
            "get_active_rules", self.rule_engine.get_active_rules(session_id)
        )
        return [rule.rule_text for rule in rules or []]

    async def _flush(self, session_id: str, result: ActionResult) -> ActionResult:
        if result.success and result.effects:
            await self.sync.push(session_id, result.effects)
        return result

    def _new_player(self, session_id: str, player_id: str, display_name: str) -> Player:
        player = Player(
            player_id=player_id,
            display_name=display_name,
            points=self.config.starting_points,
            status=PlayerStatus.ACTIVE,
            session_id=session_id,
        )
        self.store.put_player(player)
        return player

    def _seated_elsewhere(self, player_id: str, session_id: str | None) -> Session | None:
        """The other live session `player_id` still sits in, if any."""
        player = self.store.get_player(player_id)
        if player is None or player.session_id in (None, session_id):
            return None
        if player.status == PlayerStatus.LEFT:
            return None
        other = self.store.get_session(player.session_id)
        if other is None or other.status == SessionStatus.COMPLETED:
            return None
        if not other.is_member(player_id):
            return None
        return other

    # =========================================================================
    # Session & player lifecycle
    # =========================================================================

    async def create_session(self, host_id: str, host_display_name: str) -> Session:
        """
        Create a lobby session with the host as its first player.

        Raises PlayerInAnotherSession if the host is still seated in another
        live session, and SessionIdExhausted if no unique id can be found.
        """
        other = self._seated_elsewhere(host_id, None)
        if other is not None:
            raise PlayerInAnotherSession(
                f"Player {host_id} is still in session {other.session_id}."
            )
        for _ in range(SESSION_ID_ATTEMPTS):
            session_id, code = generate_session_id(self.clock.now())
            if not self.store.has_session(session_id) and self.store.find_by_code(code) is None:
                break
        else:
            raise SessionIdExhausted("Could not allocate a unique session id.")

        session = Session(
            session_id=session_id,
            host_id=host_id,
            shareable_code=code,
            max_players=self.config.max_players,
            created_at=self.clock.now(),
        )
        async with self.store.lock(session_id):
            self.store.put_session(session)
            self._new_player(session_id, host_id, host_display_name)
            session.add_member(host_id)
            await self.sync.push(session_id, [
                Effect(
                    EffectType.SESSION_CREATED,
                    player_id=host_id,
                    data={"display_name": host_display_name},
                ),
                Effect(
                    EffectType.PLAYER_JOINED,
                    player_id=host_id,
                    data={"display_name": host_display_name, "is_host": True},
                ),
            ])
        logger.info("Session %s (%s) created by %s", session_id, code, host_id)
        return session

    async def initialize_player(self, session_id: str, player_id: str, display_name: str) -> Player:
        """
        (Re)create a player's record with starting points and an empty hand.

        Does not touch Session.players; join_session does that.
        """
        player = self._new_player(session_id, player_id, display_name)
        await self.sync.guarded(
            "initialize_player",
            self.mirror.initialize_player(session_id, player_id, display_name, False),
        )
        return player

    @guarded
    async def join_session(
        self, session_id_or_code: str, player_id: str, display_name: str
    ) -> ActionResult:
        session = self.store.get_session(session_id_or_code) or self.store.find_by_code(
            session_id_or_code
        )
        if session is None:
            return _session_not_found()

        async with self.store.lock(session.session_id):
            if session.is_member(player_id):
                player = self.store.get_player(player_id)
                if player is not None and player.is_active:
                    return ActionResult.ok(
                        session_id=session.session_id,
                        player=player.to_dict(),
                        already_joined=True,
                    )
                if player is None:
                    player = self._new_player(session.session_id, player_id, display_name)
                player.status = PlayerStatus.ACTIVE
                result = ActionResult.ok(
                    [Effect(
                        EffectType.PLAYER_STATUS_CHANGED,
                        player_id=player_id,
                        data={"status": player.status.value},
                    )],
                    session_id=session.session_id,
                    player=player.to_dict(),
                    reconnected=True,
                )
                logger.info("%s reconnected to %s", player_id, session.session_id)
                return await self._flush(session.session_id, result)

            if session.status != SessionStatus.LOBBY:
                return ActionResult.failure(
                    "This game has already started.", ErrorCode.SESSION_NOT_JOINABLE
                )
            if len(session.players) >= session.max_players:
                return ActionResult.failure(
                    f"This game is full ({session.max_players} players).", ErrorCode.SESSION_FULL
                )
            wanted = display_name.strip().lower()
            for member in self.store.players_of(session):
                if member.display_name.strip().lower() == wanted:
                    return ActionResult.failure(
                        f"The name {display_name!r} is already taken in this game.",
                        ErrorCode.DUPLICATE_PLAYER_NAME,
                    )

            other = self._seated_elsewhere(player_id, session.session_id)
            if other is not None:
                return ActionResult.failure(
                    f"Player {player_id} is still in session {other.session_id}.",
                    ErrorCode.PLAYER_IN_ANOTHER_SESSION,
                )
            player = self._new_player(session.session_id, player_id, display_name)
            session.add_member(player_id)
            logger.info("%s joined %s", player_id, session.session_id)
            return await self._flush(session.session_id, ActionResult.ok(
                [Effect(
                    EffectType.PLAYER_JOINED,
                    player_id=player_id,
                    data={"display_name": display_name, "is_host": False},
                )],
                session_id=session.session_id,
                player=player.to_dict(),
                already_joined=False,
            ))

    @guarded
    async def leave_session(self, session_id: str, player_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            player = self.store.get_player(player_id)
            if player is None or not session.is_member(player_id):
                return ActionResult.failure(
                    "Player is not in this game session.", ErrorCode.PLAYER_NOT_IN_SESSION
                )
            player.status = PlayerStatus.LEFT
            effects = [Effect(
                EffectType.PLAYER_STATUS_CHANGED,
                player_id=player_id,
                data={"status": player.status.value},
            )]
            if self.turns.get_current_player(session_id) == player_id:
                effects.extend(await self._advance_turn(session_id))
            effects.extend(await self._maybe_end(session))
            result = await self._flush(session_id, ActionResult.ok(effects))
            removed = await self._cleanup_locked(session)
            if removed:
                result.effects.append(Effect(EffectType.SESSION_REMOVED))
            result.data["session_removed"] = removed
            logger.info("%s left %s", player_id, session_id)
            return result

    @guarded
    async def track_player_status(
        self, session_id: str, player_id: str, status: PlayerStatus | str
    ) -> ActionResult:
        if self.store.get_session(session_id) is None:
            return _session_not_found()
        player = self.store.get_player(player_id)
        if player is None:
            return ActionResult.failure(f"Player {player_id} not found.", ErrorCode.PLAYER_NOT_FOUND)
        try:
            new_status = PlayerStatus(status)
        except ValueError:
            return ActionResult.failure(
                f"Unknown player status {status!r}.", ErrorCode.INVALID_PLAYER_STATUS
            )
        async with self.store.lock(session_id):
            player.status = new_status
            return await self._flush(session_id, ActionResult.ok(
                [Effect(
                    EffectType.PLAYER_STATUS_CHANGED,
                    player_id=player_id,
                    data={"status": player.status.value},
                )],
                player=player.to_dict(),
            ))

    @guarded
    async def assign_player_hand(
        self, session_id: str, player_id: str, hand: list[Card]
    ) -> ActionResult:
        if self.store.get_session(session_id) is None:
            return _session_not_found()
        player = self.store.get_player(player_id)
        if player is None:
            return ActionResult.failure(f"Player {player_id} not found.", ErrorCode.PLAYER_NOT_FOUND)
        async with self.store.lock(session_id):
            player.hand = list(hand)
            return await self._flush(session_id, ActionResult.ok(
                [Effect(EffectType.HAND_ASSIGNED, player_id=player_id)],
                player=player.to_dict(),
            ))

    async def cleanup_empty_session(self, session_id: str) -> bool:
        """Remove the session and its turn state if no member is active."""
        session = self.store.get_session(session_id)
        if session is None:
            return False
        async with self.store.lock(session_id):
            return await self._cleanup_locked(session)

    async def _cleanup_locked(self, session: Session) -> bool:
        if self.store.get_session(session.session_id) is not session:
            return False
        if self.store.active_players_of(session):
            return False
        self.prompts.cancel(session)
        self.callouts.clear_pending_callouts(session.session_id)
        self.turns.clear(session.session_id)
        for player_id in session.players:
            player = self.store.get_player(player_id)
            if player is not None and player.session_id == session.session_id:
                self.store.delete_player(player_id)
                self.callouts.forget_player(player_id)
        self.store.delete_session(session.session_id)
        logger.info("Session %s removed (no active players)", session.session_id)
        return True

    # =========================================================================
    # Game start / end
    # =========================================================================

    @guarded
    async def start_game(self, session_id: str, host_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            if session.host_id != host_id:
                return ActionResult.failure(
                    "Only the host can start the game.", ErrorCode.NOT_HOST
                )
            if session.status != SessionStatus.LOBBY:
                return ActionResult.failure(
                    "The game can only be started from the lobby.", ErrorCode.INVALID_TRANSITION
                )
            active = self.store.active_players_of(session)
            if len(active) < self.config.min_players:
                return ActionResult.failure(
                    f"At least {self.config.min_players} players are needed to start.",
                    ErrorCode.NOT_ENOUGH_PLAYERS,
                )

            session.transition_to(SessionStatus.IN_PROGRESS)
            session.started_at = self.clock.now()
            await self._rule_engine_call(
                "initialize_session",
                self.rule_engine.initialize_session(
                    session_id, {"max_turns": self.config.max_turns}
                ),
            )
            turn = self.turns.initialize_turn_order(session_id, [p.player_id for p in active])

            effects = [Effect(
                EffectType.SESSION_STATUS_CHANGED,
                data={"status": session.status.value},
            )]
            referee_card = Card.create(CardType.REFEREE, "Referee", name="Referee")
            referee_id = await self._assign_referee(session, referee_card)
            referee = self.store.get_player(referee_id) if referee_id is not None else None
            if referee is not None:
                referee.hand.append(referee_card)
                effects.append(Effect(EffectType.REFEREE_CHANGED, target_player_id=referee_id))
                effects.append(Effect(
                    EffectType.HAND_ASSIGNED, player_id=referee_id, card_id=referee_card.id
                ))
            logger.info("Game %s started with %d players", session_id, len(active))
            return await self._flush(session_id, ActionResult.ok(
                effects,
                turn=turn.to_dict(),
                referee=referee_id,
            ))

    @guarded
    async def end_game(
        self, session_id: str, end_condition: EndCondition | str = EndCondition.MANUAL_END
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        try:
            condition = EndCondition(end_condition)
        except ValueError:
            return ActionResult.failure(
                f"Unknown end condition {end_condition!r}.", ErrorCode.INVALID_END_CONDITION
            )
        async with self.store.lock(session_id):
            if session.status != SessionStatus.IN_PROGRESS:
                return ActionResult.failure(
                    "The game is not in progress.", ErrorCode.GAME_NOT_IN_PROGRESS
                )
            effects = await self._end_locked(session, condition)
            return await self._flush(
                session_id, ActionResult.ok(effects, results=session.results.to_dict())
            )

    def check_end_conditions(self, session_id: str) -> EndCondition | None:
        session = self.store.get_session(session_id)
        if session is None or session.status != SessionStatus.IN_PROGRESS:
            return None
        return evaluate_end_condition(
            self.store, session, self.store.get_turn(session_id), self.config
        )

    async def _maybe_end(self, session: Session) -> list[Effect]:
        condition = self.check_end_conditions(session.session_id)
        if condition is None:
            return []
        return await self._end_locked(session, condition)

    async def _end_locked(self, session: Session, condition: EndCondition) -> list[Effect]:
        session.transition_to(SessionStatus.COMPLETED)
        session.ended_at = self.clock.now()
        self.prompts.cancel(session)
        self.callouts.clear_pending_callouts(session.session_id)
        await self._rule_engine_call(
            "handle_game_end", self.rule_engine.handle_game_end(session.session_id)
        )
        session.results = compute_results(
            self.store,
            session,
            self.store.get_turn(session.session_id),
            condition,
            session.ended_at,
        )
        logger.info(
            "Game %s ended (%s), winners: %s",
            session.session_id, condition.value, session.results.winners,
        )
        return [
            Effect(EffectType.SESSION_STATUS_CHANGED, data={"status": session.status.value}),
            Effect(EffectType.GAME_ENDED, data=session.results.to_dict()),
        ]

    # =========================================================================
    # Turns
    # =========================================================================

    def initialize_turn_order(self, session_id: str, ordered_player_ids: list[str]) -> TurnState:
        return self.turns.initialize_turn_order(session_id, ordered_player_ids)

    def can_player_act(self, session_id: str, player_id: str) -> bool:
        return self.turns.can_player_act(session_id, player_id)

    def record_player_spin(self, session_id: str, player_id: str) -> bool:
        return self.turns.record_player_spin(session_id, player_id)

    def get_turn_info(self, session_id: str) -> dict[str, Any] | None:
        return self.turns.get_turn_info(session_id)

    def get_current_player(self, session_id: str) -> str | None:
        return self.turns.get_current_player(session_id)

    def validate_player_action(self, session_id: str, player_id: str) -> ErrorCode | None:
        return self.turns.validate_player_action(session_id, player_id)

    @guarded
    async def spin(self, session_id: str, player_id: str) -> ActionResult:
        if self.store.get_session(session_id) is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            error_code = self.turns.validate_player_action(session_id, player_id)
            if error_code is not None:
                return ActionResult.failure(
                    f"Player {player_id} cannot spin right now.", error_code
                )
            self.turns.record_player_spin(session_id, player_id)
            return ActionResult.ok(
                [Effect(EffectType.SPIN_RECORDED, player_id=player_id)],
                turn=self.turns.get_turn_info(session_id),
            )

    async def _advance_turn(self, session_id: str) -> list[Effect]:
        turn = self.turns.next_turn(session_id)
        if turn is None:
            return []
        await self._rule_engine_call(
            "handle_turn_progression",
            self.rule_engine.handle_turn_progression(session_id, turn.turn_number),
        )
        return [Effect(
            EffectType.TURN_ADVANCED,
            player_id=turn.current_player_id,
            data={"turn_number": turn.turn_number},
        )]

    @guarded
    async def next_turn(self, session_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            if self.store.get_turn(session_id) is None:
                return ActionResult.failure(
                    "Turn order has not been set.", ErrorCode.TURN_NOT_INITIALIZED
                )
            effects = await self._advance_turn(session_id)
            effects.extend(await self._maybe_end(session))
            return await self._flush(
                session_id, ActionResult.ok(effects, turn=self.turns.get_turn_info(session_id))
            )

    @guarded
    async def handle_player_disconnect(self, session_id: str, player_id: str) -> ActionResult:
        if self.store.get_session(session_id) is None:
            return _session_not_found()
        if self.store.get_player(player_id) is None:
            return ActionResult.failure(f"Player {player_id} not found.", ErrorCode.PLAYER_NOT_FOUND)
        async with self.store.lock(session_id):
            was_current = self.turns.get_current_player(session_id) == player_id
            self.turns.handle_player_disconnect(session_id, player_id)
            effects = [Effect(
                EffectType.PLAYER_STATUS_CHANGED,
                player_id=player_id,
                data={"status": PlayerStatus.DISCONNECTED.value},
            )]
            if was_current:
                turn = self.store.get_turn(session_id)
                await self._rule_engine_call(
                    "handle_turn_progression",
                    self.rule_engine.handle_turn_progression(session_id, turn.turn_number),
                )
                effects.append(Effect(
                    EffectType.TURN_ADVANCED,
                    player_id=turn.current_player_id,
                    data={"turn_number": turn.turn_number},
                ))
            session = self.store.get_session(session_id)
            if session is not None:
                effects.extend(await self._maybe_end(session))
            return await self._flush(session_id, ActionResult.ok(effects, turn_advanced=was_current))

    # =========================================================================
    # Referee
    # =========================================================================

    async def _assign_referee(self, session: Session, referee_card: Card | None) -> str | None:
        try:
            roster = await self.mirror.get_players_in_session(session.session_id)
        except Exception:
            logger.warning("Could not read roster for %s", session.session_id, exc_info=True)
            roster = []
        return self.referees.assign_referee_card(session, roster, referee_card)

    async def assign_referee_card(
        self, session_id: str, referee_card: Card | None = None
    ) -> str | None:
        """Draw a referee from the mirrored active roster. None if nobody is active."""
        session = self.store.get_session(session_id)
        if session is None:
            return None
        async with self.store.lock(session_id):
            referee_id = await self._assign_referee(session, referee_card)
            if referee_id is not None:
                await self.sync.push(
                    session_id, [Effect(EffectType.REFEREE_CHANGED, target_player_id=referee_id)]
                )
            return referee_id

    @guarded
    async def swap_referee_role(
        self,
        session_id: str,
        current_referee_id: str,
        new_referee_id: str | None = None,
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.referees.swap_referee_role(session, current_referee_id, new_referee_id)
            return await self._flush(session_id, result)

    # =========================================================================
    # Callouts
    # =========================================================================

    @guarded
    async def initiate_callout(
        self,
        session_id: str,
        caller_id: str,
        accused_player_id: str,
        rule_violated: str | None = None,
    ) -> ActionResult:
        if self.store.get_session(session_id) is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.callouts.initiate_callout(
                session_id, caller_id, accused_player_id, rule_violated
            )
            return await self._flush(session_id, result)

    @guarded
    async def adjudicate_callout(
        self,
        session_id: str,
        referee_id: str,
        is_valid: bool,
        callout_id: str | None = None,
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.callouts.adjudicate_callout(session_id, referee_id, is_valid, callout_id)
            if not result.success:
                return result
            if is_valid:
                callout = result.data["callout"]
                removed = await self._rule_engine_call(
                    "handle_callout_success",
                    self.rule_engine.handle_callout_success(
                        session_id,
                        accused_player_id=callout["accused_player_id"],
                        caller_id=callout["caller_id"],
                    ),
                )
                result.data["rules_removed"] = [rule.id for rule in removed or []]
                result.effects.extend(await self._maybe_end(session))
            return await self._flush(session_id, result)

    def get_current_callout(self, session_id: str) -> Callout | None:
        return self.callouts.get_current_callout(session_id)

    def get_callout_history(self, session_id: str) -> list[Callout]:
        return self.callouts.get_callout_history(session_id)

    # =========================================================================
    # Cards
    # =========================================================================

    @guarded
    async def draw_card(self, session_id: str, player_id: str, card: Card) -> ActionResult:
        """Put a drawn card in the current player's hand and activate its rule."""
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            turn = self.store.get_turn(session_id)
            if turn is None:
                return ActionResult.failure(
                    "Turn order has not been set.", ErrorCode.TURN_NOT_INITIALIZED
                )
            if turn.current_player_id != player_id:
                return ActionResult.failure(
                    f"It is not {player_id}'s turn.", ErrorCode.NOT_PLAYER_TURN
                )
            player = self.store.get_player(player_id)
            if player is None:
                return ActionResult.failure(
                    f"Player {player_id} not found.", ErrorCode.PLAYER_NOT_FOUND
                )
            player.hand.append(card)
            effects = [Effect(EffectType.CARD_DRAWN, player_id=player_id, card_id=card.id)]
            rule = await self._rule_engine_call(
                "handle_card_drawn",
                self.rule_engine.handle_card_drawn(
                    session_id, player_id, card, {"turn_number": turn.turn_number}
                ),
            )
            if rule is not None:
                effects.append(Effect(
                    EffectType.RULE_ACTIVATED,
                    player_id=player_id,
                    card_id=card.id,
                    data=rule.to_dict(),
                ))
            return await self._flush(session_id, ActionResult.ok(
                effects,
                card=card.to_dict(),
                active_rule=rule.to_dict() if rule is not None else None,
            ))

    @guarded
    async def transfer_card(
        self, session_id: str, from_player_id: str, to_player_id: str, card_id: str
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.cards.transfer_card(session, from_player_id, to_player_id, card_id)
            if result.success:
                await self._rule_engine_call(
                    "handle_card_transfer",
                    self.rule_engine.handle_card_transfer(
                        session_id, from_player_id, to_player_id, card_id
                    ),
                )
            return await self._flush(session_id, result)

    @guarded
    async def swap_cards(
        self,
        session_id: str,
        player_a_id: str,
        player_b_id: str,
        card_a_id: str,
        card_b_id: str,
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            rule_texts = await self._active_rule_texts(session_id)
            result = self.cards.swap_cards(
                session, player_a_id, player_b_id, card_a_id, card_b_id, rule_texts
            )
            if result.success:
                for giver, receiver, card_id in (
                    (player_a_id, player_b_id, card_a_id),
                    (player_b_id, player_a_id, card_b_id),
                ):
                    await self._rule_engine_call(
                        "handle_card_transfer",
                        self.rule_engine.handle_card_transfer(session_id, giver, receiver, card_id),
                    )
            return await self._flush(session_id, result)

    @guarded
    async def clone_card(
        self, session_id: str, player_id: str, target_player_id: str, target_card_id: str
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            rule_texts = await self._active_rule_texts(session_id)
            result = self.cards.clone_card(
                session, player_id, target_player_id, target_card_id, rule_texts
            )
            return await self._flush(session_id, result)

    @guarded
    async def flip_card(self, session_id: str, player_id: str, card_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            rule_texts = await self._active_rule_texts(session_id)
            result = self.cards.flip_card(session, player_id, card_id, rule_texts)
            return await self._flush(session_id, result)

    @guarded
    async def remove_card_from_player(
        self, session_id: str, player_id: str, card_id: str
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.cards.remove_card_from_player(session, player_id, card_id)
            return await self._flush(session_id, result)

    def get_clone_chain_depth(self, session_id: str, card_id: str) -> int | None:
        session = self.store.get_session(session_id)
        if session is None:
            return None
        found = self.cards.find_card(session, card_id)
        return self.cards.chain_depth(session, found[1]) if found else None

    # =========================================================================
    # Prompts
    # =========================================================================

    def _schedule_prompt_timeout(self, session_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_prompt_timeout(session_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @guarded
    async def activate_prompt(
        self,
        session_id: str,
        player_id: str,
        card: Card,
        time_limit: float | None = None,
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.prompts.activate_prompt(
                session,
                player_id,
                card,
                time_limit,
                on_timeout=functools.partial(self._schedule_prompt_timeout, session_id),
            )
            return await self._flush(session_id, result)

    @guarded
    async def complete_prompt(self, session_id: str, player_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            return await self._flush(session_id, self.prompts.complete_prompt(session, player_id))

    @guarded
    async def handle_prompt_timeout(self, session_id: str) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            return await self._flush(session_id, self.prompts.handle_prompt_timeout(session))

    @guarded
    async def judge_prompt(self, session_id: str, referee_id: str, successful: bool) -> ActionResult:
        session = self.store.get_session(session_id)
        if session is None:
            return _session_not_found()
        async with self.store.lock(session_id):
            result = self.prompts.judge_prompt(session, referee_id, successful)
            return await self._flush(session_id, result)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_session(self, session_id: str) -> Session | None:
        return self.store.get_session(session_id)

    def get_player(self, player_id: str) -> Player | None:
        return self.store.get_player(player_id)

    def list_sessions(self) -> list[Session]:
        return self.store.list_sessions()

    def get_session_state(self, session_id: str) -> dict[str, Any] | None:
        """Serializable snapshot of a session, its players and turn."""
        session = self.store.get_session(session_id)
        if session is None:
            return None
        state = session.to_dict()
        state["player_records"] = [p.to_dict() for p in self.store.players_of(session)]
        state["turn"] = self.turns.get_turn_info(session_id)
        state["active_prompt"] = session.active_prompt.to_dict() if session.active_prompt else None
        state["results"] = session.results.to_dict() if session.results else None
        return state
