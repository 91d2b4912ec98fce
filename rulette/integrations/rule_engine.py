"""
Rule Engine - Ledger of rules that are currently in effect.

The game engine only needs the rule engine for four things:
1. Turning a drawn rule/modifier card into an active rule
2. Listing active rule text (for "cannot clone/flip/swap" checks)
3. Reacting to game events (turn advance, card transfer, callout)
4. Dropping everything when the game ends

RULE LIFECYCLE:
- A rule becomes active when its card is drawn
- Turn-based rules expire once `turn_duration` rounds have passed
- Rules removable by callout are dropped when their owner is called out
- Rules tied to a card follow the card when it changes hands, unless the
  rule is removed on transfer
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
import logging
import uuid

from ..engine_core.state import Card, RULE_BEARING_TYPES


logger = logging.getLogger(__name__)


class RuleState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class RemovalCondition(str, Enum):
    """Events that can take a rule out of play."""
    MANUAL = "manual"
    CALLOUT_SUCCESS = "callout_success"
    CARD_TRANSFER = "card_transfer"
    TURN_LIMIT = "turn_limit"
    GAME_END = "game_end"


class RuleScope(str, Enum):
    GLOBAL = "global"
    OWNER = "owner"


@dataclass
class ActiveRule:
    """A rule in effect for a session."""
    id: str
    rule_text: str
    owner_id: str | None = None
    card_id: str | None = None
    rule_type: str = "rule"
    scope: RuleScope = RuleScope.GLOBAL
    activated_turn: int = 1
    turn_duration: int | None = None
    removal_conditions: set[RemovalCondition] = field(
        default_factory=lambda: {RemovalCondition.CALLOUT_SUCCESS}
    )
    state: RuleState = RuleState.ACTIVE
    removed_by: RemovalCondition | None = None

    def should_expire(self, current_turn: int) -> bool:
        if self.turn_duration is None:
            return False
        return current_turn >= self.activated_turn + self.turn_duration

    def applies_to(self, player_id: str) -> bool:
        return self.scope == RuleScope.GLOBAL or self.owner_id == player_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_text": self.rule_text,
            "owner_id": self.owner_id,
            "card_id": self.card_id,
            "rule_type": self.rule_type,
            "scope": self.scope.value,
            "activated_turn": self.activated_turn,
            "turn_duration": self.turn_duration,
            "state": self.state.value,
        }


class RuleEngine(Protocol):
    """Async interface the game manager calls into."""

    async def initialize_session(self, session_id: str, config: dict[str, Any] | None = None) -> None:
        ...

    async def handle_turn_progression(self, session_id: str, turn_number: int) -> list[ActiveRule]:
        ...

    async def handle_card_drawn(
        self, session_id: str, player_id: str, card: Card, context: dict[str, Any] | None = None
    ) -> ActiveRule | None:
        ...

    async def get_active_rules(self, session_id: str) -> list[ActiveRule]:
        ...

    async def get_effective_rules_for_player(self, session_id: str, player_id: str) -> list[ActiveRule]:
        ...

    async def handle_card_transfer(
        self, session_id: str, from_player_id: str, to_player_id: str, card_id: str
    ) -> list[ActiveRule]:
        ...

    async def handle_callout_success(
        self,
        session_id: str,
        accused_player_id: str,
        caller_id: str,
        rule_id: str | None = None,
    ) -> list[ActiveRule]:
        ...

    async def handle_game_end(self, session_id: str) -> list[ActiveRule]:
        ...


class InMemoryRuleEngine:
    """
    Dict-backed rule engine.

    Rule and modifier cards activate as rules owned by the drawer; every
    other card type activates nothing.
    """

    def __init__(self):
        self._rules: dict[str, dict[str, ActiveRule]] = {}
        self._removed: dict[str, list[ActiveRule]] = {}

    def _session_rules(self, session_id: str) -> dict[str, ActiveRule]:
        return self._rules.setdefault(session_id, {})

    def _deactivate(self, session_id: str, rule: ActiveRule, reason: RemovalCondition) -> None:
        self._session_rules(session_id).pop(rule.id, None)
        rule.state = RuleState.EXPIRED
        rule.removed_by = reason
        self._removed.setdefault(session_id, []).append(rule)
        logger.debug("Rule %s removed from %s (%s)", rule.id, session_id, reason.value)

    def activate_rule(
        self,
        session_id: str,
        rule_text: str,
        owner_id: str | None = None,
        card_id: str | None = None,
        *,
        rule_type: str = "rule",
        scope: RuleScope = RuleScope.GLOBAL,
        activated_turn: int = 1,
        turn_duration: int | None = None,
        removal_conditions: set[RemovalCondition] | None = None,
    ) -> ActiveRule:
        """Put a rule into effect directly (house rules, tests)."""
        rule = ActiveRule(
            id=f"rule_{uuid.uuid4().hex[:12]}",
            rule_text=rule_text,
            owner_id=owner_id,
            card_id=card_id,
            rule_type=rule_type,
            scope=scope,
            activated_turn=activated_turn,
            turn_duration=turn_duration,
        )
        if removal_conditions is not None:
            rule.removal_conditions = set(removal_conditions)
        self._session_rules(session_id)[rule.id] = rule
        logger.info("Rule activated in %s: %r", session_id, rule_text)
        return rule

    def removed_rules(self, session_id: str) -> list[ActiveRule]:
        return list(self._removed.get(session_id, []))

    async def initialize_session(self, session_id: str, config: dict[str, Any] | None = None) -> None:
        self._rules.setdefault(session_id, {})
        self._removed.setdefault(session_id, [])

    async def handle_turn_progression(self, session_id: str, turn_number: int) -> list[ActiveRule]:
        expired = [
            rule for rule in self._session_rules(session_id).values()
            if rule.should_expire(turn_number)
        ]
        for rule in expired:
            self._deactivate(session_id, rule, RemovalCondition.TURN_LIMIT)
        return expired

    async def handle_card_drawn(
        self, session_id: str, player_id: str, card: Card, context: dict[str, Any] | None = None
    ) -> ActiveRule | None:
        if card.type not in RULE_BEARING_TYPES or not card.current_text:
            return None
        context = context or {}
        return self.activate_rule(
            session_id,
            card.current_text,
            owner_id=player_id,
            card_id=card.id,
            rule_type=card.type.value,
            activated_turn=context.get("turn_number", 1),
            turn_duration=context.get("turn_duration"),
        )

    async def get_active_rules(self, session_id: str) -> list[ActiveRule]:
        return list(self._rules.get(session_id, {}).values())

    async def get_effective_rules_for_player(self, session_id: str, player_id: str) -> list[ActiveRule]:
        return [
            rule for rule in self._rules.get(session_id, {}).values()
            if rule.applies_to(player_id)
        ]

    async def handle_card_transfer(
        self, session_id: str, from_player_id: str, to_player_id: str, card_id: str
    ) -> list[ActiveRule]:
        transferred = []
        for rule in list(self._session_rules(session_id).values()):
            if rule.card_id != card_id:
                continue
            if RemovalCondition.CARD_TRANSFER in rule.removal_conditions:
                self._deactivate(session_id, rule, RemovalCondition.CARD_TRANSFER)
            elif rule.owner_id == from_player_id:
                rule.owner_id = to_player_id
                transferred.append(rule)
        return transferred

    async def handle_callout_success(
        self,
        session_id: str,
        accused_player_id: str,
        caller_id: str,
        rule_id: str | None = None,
    ) -> list[ActiveRule]:
        rules = self._session_rules(session_id)
        if rule_id is not None:
            candidates = [rules[rule_id]] if rule_id in rules else []
        else:
            candidates = [r for r in rules.values() if r.owner_id == accused_player_id]
        removed = [
            rule for rule in candidates
            if RemovalCondition.CALLOUT_SUCCESS in rule.removal_conditions
        ]
        for rule in removed:
            self._deactivate(session_id, rule, RemovalCondition.CALLOUT_SUCCESS)
        return removed

    async def handle_game_end(self, session_id: str) -> list[ActiveRule]:
        removed = list(self._session_rules(session_id).values())
        for rule in removed:
            self._deactivate(session_id, rule, RemovalCondition.GAME_END)
        return removed
