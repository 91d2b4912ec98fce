"""
Tests for callouts and referee decisions.

Tests:
- Validation order
- Caller cooldown and rate limit
- Referee decision cooldown
- Point transfer and clamping
- Actions blocked while a callout is pending
- Mirror and rule engine failures
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ..config import EngineConfig
from ..engine_core.action import EffectType, ErrorCode
from ..engine_core.state import CalloutStatus, SessionStatus
from ..session import GameManager
from .conftest import rule_card


class TestValidation:
    """The first failing check decides the error."""

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        result = await manager.initiate_callout("missing", "p2", "p3")

        assert result.error_code == ErrorCode.SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_outsider_caller(self, manager, started_game):
        session = await started_game()

        result = await manager.initiate_callout(session.session_id, "stranger", "p3")

        assert result.error_code == ErrorCode.PLAYER_NOT_IN_SESSION

    @pytest.mark.asyncio
    async def test_self_callout_checked_before_referee(self, manager, started_game):
        """The referee calling out themselves is a self-callout."""
        session = await started_game()

        result = await manager.initiate_callout(session.session_id, "host", "host")

        assert result.error_code == ErrorCode.SELF_CALLOUT

    @pytest.mark.asyncio
    async def test_referee_cannot_be_accused(self, manager, started_game):
        session = await started_game()

        result = await manager.initiate_callout(session.session_id, "p2", "host")

        assert result.error_code == ErrorCode.REFEREE_NOT_ACCUSABLE

    @pytest.mark.asyncio
    async def test_referee_cannot_call_out(self, manager, started_game):
        session = await started_game()

        result = await manager.initiate_callout(session.session_id, "host", "p2")

        assert result.error_code == ErrorCode.REFEREE_CANNOT_CALL_OUT

    @pytest.mark.asyncio
    async def test_needs_a_referee(self, manager):
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")

        result = await manager.initiate_callout(session.session_id, "host", "p2")

        assert result.error_code == ErrorCode.NO_REFEREE

    @pytest.mark.asyncio
    async def test_one_pending_callout(self, manager, started_game):
        session = await started_game()
        first = await manager.initiate_callout(session.session_id, "p2", "p3", "No pointing")

        second = await manager.initiate_callout(session.session_id, "p3", "p2")

        assert first.success
        assert first.data["message"] == "Callout initiated. Waiting for referee decision."
        assert second.error_code == ErrorCode.CALLOUT_PENDING
        assert manager.get_current_callout(session.session_id).caller_id == "p2"
        assert len(manager.get_callout_history(session.session_id)) == 1


class TestThrottling:
    """Tests for caller and referee cooldowns."""

    @pytest.mark.asyncio
    async def test_caller_cooldown(self, manager, started_game, clock):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", False)

        blocked = await manager.initiate_callout(session.session_id, "p2", "p3")
        clock.advance(31)
        allowed = await manager.initiate_callout(session.session_id, "p2", "p3")

        assert blocked.error_code == ErrorCode.CALLOUT_COOLDOWN
        assert "30 seconds" in blocked.error
        assert allowed.success

    @pytest.mark.asyncio
    async def test_cooldown_is_per_caller(self, manager, started_game):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", False)

        result = await manager.initiate_callout(session.session_id, "p3", "p2")

        assert result.success

    @pytest.mark.asyncio
    async def test_rate_limit(self, clock, rng, mirror, rule_engine):
        """Three callouts per minute, even with no cooldown between them."""
        manager = GameManager(
            mirror=mirror, rule_engine=rule_engine, clock=clock, rng=rng,
            config=EngineConfig(callout_cooldown_seconds=0, referee_decision_cooldown_seconds=0),
        )
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")
        await manager.join_session(session.session_id, "p3", "Carol")
        await manager.start_game(session.session_id, "host")

        for _ in range(3):
            clock.advance(1)
            assert (await manager.initiate_callout(session.session_id, "p2", "p3")).success
            await manager.adjudicate_callout(session.session_id, "host", False)

        limited = await manager.initiate_callout(session.session_id, "p2", "p3")
        clock.advance(60)
        allowed = await manager.initiate_callout(session.session_id, "p2", "p3")

        assert limited.error_code == ErrorCode.CALLOUT_RATE_LIMITED
        assert limited.error == "You have reached the maximum of 3 callouts per minute."
        assert allowed.success

    @pytest.mark.asyncio
    async def test_referee_decision_cooldown(self, manager, started_game, clock):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", False)
        clock.advance(1)
        await manager.initiate_callout(session.session_id, "p3", "p2")

        blocked = await manager.adjudicate_callout(session.session_id, "host", True)
        clock.advance(4)
        allowed = await manager.adjudicate_callout(session.session_id, "host", True)

        assert blocked.error_code == ErrorCode.REFEREE_COOLDOWN
        assert blocked.error == "Referee decision cooldown active. Please wait 4 more seconds."
        assert allowed.success


class TestAdjudication:
    """Tests for adjudicate_callout."""

    @pytest.mark.asyncio
    async def test_valid_callout_moves_a_point(self, manager, started_game):
        session = await started_game()
        created = await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.success
        assert result.data["decision"] == CalloutStatus.VALID.value
        assert result.data["points_transferred"] == 1
        assert manager.get_player("p3").points == 19
        assert manager.get_player("p2").points == 21
        assert session.total_points_transferred == 1
        assert manager.get_current_callout(session.session_id) is None
        history = manager.get_callout_history(session.session_id)
        assert history[0].callout_id == created.data["callout_id"]
        assert history[0].status == CalloutStatus.VALID
        assert history[0].referee_decision.referee_id == "host"

    @pytest.mark.asyncio
    async def test_invalid_callout_keeps_points(self, manager, started_game):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", False)

        assert result.data["decision"] == CalloutStatus.INVALID.value
        assert result.data["points_transferred"] == 0
        assert manager.get_player("p3").points == 20
        assert not result.effects_of(EffectType.POINTS_CHANGED)

    @pytest.mark.asyncio
    async def test_accused_never_goes_negative(self, manager, started_game):
        session = await started_game()
        manager.get_player("p3").points = 0
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.data["points_transferred"] == 0
        assert manager.get_player("p3").points == 0
        assert manager.get_player("p2").points == 20

    @pytest.mark.asyncio
    async def test_last_point_ends_game(self, manager, started_game):
        session = await started_game()
        manager.get_player("p3").points = 1
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert session.status == SessionStatus.COMPLETED
        assert session.results.end_condition.value == "zero_points"
        assert session.results.winners == ["p2"]
        assert result.effects_of(EffectType.GAME_ENDED)

    @pytest.mark.asyncio
    async def test_only_referee_adjudicates(self, manager, started_game):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "p2", True)

        assert result.error_code == ErrorCode.NOT_REFEREE
        assert result.error == "Only the referee can adjudicate callouts"
        assert manager.get_current_callout(session.session_id) is not None

    @pytest.mark.asyncio
    async def test_nothing_to_adjudicate(self, manager, started_game):
        session = await started_game()

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.error_code == ErrorCode.NO_ACTIVE_CALLOUT

    @pytest.mark.asyncio
    async def test_decided_callout_cannot_be_reopened(self, manager, started_game, clock):
        session = await started_game()
        created = await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", False)
        clock.advance(6)

        result = await manager.adjudicate_callout(
            session.session_id, "host", True, created.data["callout_id"]
        )

        assert result.error_code == ErrorCode.CALLOUT_ALREADY_DECIDED
        assert manager.get_player("p3").points == 20

    @pytest.mark.asyncio
    async def test_valid_callout_removes_accused_rules(self, manager, started_game, rule_engine):
        session = await started_game()
        rule = rule_engine.activate_rule(session.session_id, "No laughing", owner_id="p3")
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.data["rules_removed"] == [rule.id]
        assert await rule_engine.get_active_rules(session.session_id) == []


class TestPendingCalloutBlocks:
    """Transfers and referee swaps wait for the referee."""

    @pytest.mark.asyncio
    async def test_transfer_blocked(self, manager, started_game):
        session = await started_game()
        card = rule_card()
        manager.get_player("p2").hand.append(card)
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.transfer_card(session.session_id, "p2", "p3", card.id)

        assert result.error_code == ErrorCode.CALLOUT_PENDING
        assert result.error == "Cannot transfer cards while a callout is pending referee decision."
        assert card in manager.get_player("p2").hand

    @pytest.mark.asyncio
    async def test_swap_blocked(self, manager, started_game):
        session = await started_game()
        card_a, card_b = rule_card(), rule_card("No pointing")
        manager.get_player("p2").hand.append(card_a)
        manager.get_player("p3").hand.append(card_b)
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.swap_cards(session.session_id, "p2", "p3", card_a.id, card_b.id)

        assert result.error_code == ErrorCode.CALLOUT_PENDING
        assert card_a in manager.get_player("p2").hand

    @pytest.mark.asyncio
    async def test_transfer_allowed_after_decision(self, manager, started_game):
        session = await started_game()
        card = rule_card()
        manager.get_player("p2").hand.append(card)
        await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", False)

        result = await manager.transfer_card(session.session_id, "p2", "p3", card.id)

        assert result.success, result.error
        assert card in manager.get_player("p3").hand

    @pytest.mark.asyncio
    async def test_referee_swap_allowed_after_decision(self, manager, started_game):
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")
        await manager.adjudicate_callout(session.session_id, "host", True)

        result = await manager.swap_referee_role(session.session_id, "host", "p2")

        assert result.success, result.error
        assert session.referee == "p2"

    @pytest.mark.asyncio
    async def test_concurrent_callouts_single_flight(self, manager, started_game):
        """Two callouts racing on one session: exactly one is accepted."""
        session = await started_game()

        results = await asyncio.gather(
            manager.initiate_callout(session.session_id, "p2", "p3"),
            manager.initiate_callout(session.session_id, "p3", "p2"),
        )

        assert sorted(r.success for r in results) == [False, True]
        rejected = next(r for r in results if not r.success)
        assert rejected.error_code == ErrorCode.CALLOUT_PENDING
        assert len(session.callout_history) == 1


class TestIntegrationFailures:
    """Failures outside the engine never undo a decision."""

    @pytest.mark.asyncio
    async def test_mirror_failure_keeps_points(self, manager, started_game, mirror):
        session = await started_game()
        mirror.update_player_points = AsyncMock(side_effect=ConnectionError("offline"))
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.success
        assert manager.get_player("p3").points == 19
        assert mirror.update_player_points.await_count == 2

    @pytest.mark.asyncio
    async def test_rule_engine_failure_keeps_decision(self, manager, started_game, rule_engine):
        session = await started_game()
        rule_engine.handle_callout_success = AsyncMock(side_effect=RuntimeError("boom"))
        await manager.initiate_callout(session.session_id, "p2", "p3")

        result = await manager.adjudicate_callout(session.session_id, "host", True)

        assert result.success
        assert result.data["rules_removed"] == []
        assert manager.get_player("p2").points == 21
