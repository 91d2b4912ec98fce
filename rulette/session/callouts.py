"""
Callout Manager - Accusations, referee decisions and anti-abuse throttling.

CALLOUT STATES:
    (none) -> pending_referee_decision -> valid | invalid | cancelled

A pending callout is cancelled when its game ends or its session is
removed before the referee decides.

VALIDATION ORDER (first failure wins, nothing is mutated on failure):
1. Session exists
2. Caller and accused are both members
3. Caller is not the accused
4. Accused is not the referee
5. Caller is not the referee
6. A referee is assigned
7. No callout is already pending
8. Caller is outside their cooldown
9. Caller is under the per-window rate limit

Cooldowns are evaluated lazily against the injected clock; no timers.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging

from ..config import EngineConfig
from ..engine_core.action import ActionResult, Effect, EffectType, ErrorCode
from ..engine_core.state import Callout, CalloutStatus, Session
from ..engine_core.timing import Clock, cooldown_remaining, count_in_window, whole_seconds
from .store import SessionStore


logger = logging.getLogger(__name__)


@dataclass
class CalloutRecord:
    """One entry in a caller's recent-callout ledger."""
    callout_id: str
    timestamp: float
    accused_player_id: str
    status: CalloutStatus = CalloutStatus.PENDING


class CalloutManager:

    def __init__(self, store: SessionStore, clock: Clock, config: EngineConfig):
        self.store = store
        self.clock = clock
        self.config = config
        self._ledgers: dict[str, list[CalloutRecord]] = {}
        self._referee_decisions: dict[str, float] = {}

    # =========================================================================
    # Ledgers
    # =========================================================================

    def recent_callouts(self, player_id: str) -> list[CalloutRecord]:
        return list(self._ledgers.get(player_id, []))

    def last_referee_decision(self, referee_id: str) -> float | None:
        return self._referee_decisions.get(referee_id)

    def _record(self, player_id: str, callout: Callout) -> None:
        ledger = self._ledgers.setdefault(player_id, [])
        ledger.append(CalloutRecord(
            callout_id=callout.callout_id,
            timestamp=callout.timestamp,
            accused_player_id=callout.accused_player_id,
        ))
        del ledger[:-self.config.callout_ledger_size]

    def _mark(self, player_id: str, callout: Callout) -> None:
        for record in self._ledgers.get(player_id, []):
            if record.callout_id == callout.callout_id:
                record.status = callout.status

    def forget_player(self, player_id: str) -> None:
        self._ledgers.pop(player_id, None)
        self._referee_decisions.pop(player_id, None)

    # =========================================================================
    # Checks
    # =========================================================================

    def check_cooldown(self, player_id: str, now: float) -> ActionResult | None:
        ledger = self._ledgers.get(player_id)
        last = ledger[-1].timestamp if ledger else None
        remaining = cooldown_remaining(self.config.callout_cooldown_seconds, now, last)
        if remaining > 0:
            seconds = whole_seconds(remaining)
            return ActionResult.failure(
                f"You must wait {seconds} seconds before making another callout.",
                ErrorCode.CALLOUT_COOLDOWN,
            )
        return None

    def check_rate_limit(self, player_id: str, now: float) -> ActionResult | None:
        timestamps = [r.timestamp for r in self._ledgers.get(player_id, [])]
        recent = count_in_window(timestamps, now, self.config.callout_window_seconds)
        if recent >= self.config.max_callouts_per_window:
            return ActionResult.failure(
                f"You have reached the maximum of {self.config.max_callouts_per_window} "
                f"callouts per minute.",
                ErrorCode.CALLOUT_RATE_LIMITED,
            )
        return None

    def check_referee_cooldown(self, referee_id: str, now: float) -> ActionResult | None:
        remaining = cooldown_remaining(
            self.config.referee_decision_cooldown_seconds,
            now,
            self._referee_decisions.get(referee_id),
        )
        if remaining > 0:
            return ActionResult.failure(
                f"Referee decision cooldown active. Please wait {whole_seconds(remaining)} "
                f"more seconds.",
                ErrorCode.REFEREE_COOLDOWN,
            )
        return None

    def validate_callout(
        self, session: Session | None, caller_id: str, accused_player_id: str
    ) -> ActionResult | None:
        """Run the validation chain. Returns the first failure, or None."""
        if session is None:
            return ActionResult.failure("Game session not found.", ErrorCode.SESSION_NOT_FOUND)
        if not session.is_member(caller_id):
            return ActionResult.failure(
                "Caller is not in this game session.", ErrorCode.PLAYER_NOT_IN_SESSION
            )
        if not session.is_member(accused_player_id):
            return ActionResult.failure(
                "Accused player is not in this game session.", ErrorCode.PLAYER_NOT_IN_SESSION
            )
        if caller_id == accused_player_id:
            return ActionResult.failure("You cannot call out yourself.", ErrorCode.SELF_CALLOUT)
        if session.referee is not None and accused_player_id == session.referee:
            return ActionResult.failure(
                "You cannot call out the current referee.", ErrorCode.REFEREE_NOT_ACCUSABLE
            )
        if session.referee is not None and caller_id == session.referee:
            return ActionResult.failure(
                "The referee cannot initiate callouts.", ErrorCode.REFEREE_CANNOT_CALL_OUT
            )
        if session.referee is None:
            return ActionResult.failure(
                "No referee assigned to this session.", ErrorCode.NO_REFEREE
            )
        if session.has_pending_callout:
            return ActionResult.failure(
                "There is already an active callout pending referee decision.",
                ErrorCode.CALLOUT_PENDING,
            )
        now = self.clock.now()
        return self.check_cooldown(caller_id, now) or self.check_rate_limit(caller_id, now)

    # =========================================================================
    # Operations
    # =========================================================================

    def initiate_callout(
        self,
        session_id: str,
        caller_id: str,
        accused_player_id: str,
        rule_violated: str | None = None,
    ) -> ActionResult:
        session = self.store.get_session(session_id)
        failure = self.validate_callout(session, caller_id, accused_player_id)
        if failure is not None:
            logger.debug("Callout by %s rejected: %s", caller_id, failure.error_code)
            return failure

        callout = Callout(
            caller_id=caller_id,
            accused_player_id=accused_player_id,
            timestamp=self.clock.now(),
            rule_violated=rule_violated,
        )
        self._record(caller_id, callout)
        session.current_callout = callout
        session.callout_history.append(callout)
        logger.info(
            "Callout %s in %s: %s accuses %s",
            callout.callout_id, session_id, caller_id, accused_player_id,
        )
        return ActionResult.ok(
            [Effect(
                EffectType.CALLOUT_CREATED,
                player_id=caller_id,
                target_player_id=accused_player_id,
                data={"callout_id": callout.callout_id, "rule_violated": rule_violated},
            )],
            callout=callout.to_dict(),
            callout_id=callout.callout_id,
            message="Callout initiated. Waiting for referee decision.",
        )

    def adjudicate_callout(
        self,
        session_id: str,
        referee_id: str,
        is_valid: bool,
        callout_id: str | None = None,
    ) -> ActionResult:
        """
        Record the referee's decision on the pending callout.

        A valid callout moves one point from accused to caller; the accused
        never goes below zero, so the move may be zero points.
        """
        session = self.store.get_session(session_id)
        if session is None:
            return ActionResult.failure("Game session not found.", ErrorCode.SESSION_NOT_FOUND)
        if referee_id != session.referee:
            return ActionResult.failure(
                "Only the referee can adjudicate callouts", ErrorCode.NOT_REFEREE
            )
        now = self.clock.now()
        failure = self.check_referee_cooldown(referee_id, now)
        if failure is not None:
            return failure

        callout = self._find_target(session, callout_id)
        if callout is None:
            return ActionResult.failure(
                "No active callout to adjudicate.", ErrorCode.NO_ACTIVE_CALLOUT
            )
        if not callout.is_pending:
            return ActionResult.failure(
                "This callout has already been decided.", ErrorCode.CALLOUT_ALREADY_DECIDED
            )

        callout.resolve(referee_id, is_valid, now)
        self._referee_decisions[referee_id] = now
        self._mark(callout.caller_id, callout)
        session.current_callout = None

        effects = [Effect(
            EffectType.CALLOUT_RESOLVED,
            player_id=callout.caller_id,
            target_player_id=callout.accused_player_id,
            data={"callout_id": callout.callout_id, "decision": callout.status.value},
        )]
        points_transferred = 0
        if is_valid:
            accused = self.store.get_player(callout.accused_player_id)
            caller = self.store.get_player(callout.caller_id)
            if accused is not None and caller is not None:
                points_transferred = accused.deduct_points(1)
                caller.award_points(points_transferred)
                session.total_points_transferred += points_transferred
                effects.append(Effect(
                    EffectType.POINTS_CHANGED,
                    player_id=accused.player_id,
                    data={"delta": -points_transferred, "points": accused.points},
                ))
                effects.append(Effect(
                    EffectType.POINTS_CHANGED,
                    player_id=caller.player_id,
                    data={"delta": points_transferred, "points": caller.points},
                ))

        logger.info(
            "Callout %s in %s ruled %s by %s",
            callout.callout_id, session_id, callout.status.value, referee_id,
        )
        return ActionResult.ok(
            effects,
            callout=callout.to_dict(),
            callout_id=callout.callout_id,
            decision=callout.status.value,
            points_transferred=points_transferred,
        )

    def _find_target(self, session: Session, callout_id: str | None) -> Callout | None:
        if callout_id is None:
            return session.current_callout
        if session.current_callout is not None and session.current_callout.callout_id == callout_id:
            return session.current_callout
        for callout in session.callout_history:
            if callout.callout_id == callout_id:
                return callout
        return None

    def get_current_callout(self, session_id: str) -> Callout | None:
        session = self.store.get_session(session_id)
        return session.pending_callout if session else None

    def get_callout_history(self, session_id: str) -> list[Callout]:
        session = self.store.get_session(session_id)
        return list(session.callout_history) if session else []

    def clear_pending_callouts(self, session_id: str) -> bool:
        """Cancel the pending callout without a decision (game end, cleanup)."""
        session = self.store.get_session(session_id)
        if session is None or session.current_callout is None:
            return False
        callout = session.current_callout
        if callout.is_pending:
            callout.cancel()
            self._mark(callout.caller_id, callout)
        session.current_callout = None
        return True
