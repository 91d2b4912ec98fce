"""
Tests for session and player lifecycle.

Tests:
- Session creation and id uniqueness
- Joining, reconnecting and leaving
- Starting and ending games
- Empty-session cleanup
- Mirror failures never roll back local state
"""

import pytest

from ..config import EngineConfig
from ..engine_core.action import EffectType, ErrorCode
from ..engine_core.errors import PlayerInAnotherSession, SessionIdExhausted
from ..engine_core.state import CalloutStatus, CardType, PlayerStatus, SessionStatus
from ..integrations import InMemoryMirror
from ..session import GameManager
from ..session import manager as manager_module
from .conftest import rule_card


class FlakyMirror(InMemoryMirror):
    """Mirror whose status and hand writes always fail."""

    async def update_player_status(self, session_id, player_id, status):
        raise ConnectionError("mirror offline")

    async def update_player_hand(self, session_id, player_id, hand):
        raise ConnectionError("mirror offline")


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.asyncio
    async def test_host_is_first_player(self, manager, mirror):
        """The host is registered with starting points and listed first."""
        session = await manager.create_session("host", "Alice")

        assert session.status == SessionStatus.LOBBY
        assert session.players == ["host"]
        host = manager.get_player("host")
        assert host.points == 20
        assert host.status == PlayerStatus.ACTIVE
        assert host.hand == []
        assert mirror.calls_to("create_session")[0].args["host_id"] == "host"

    @pytest.mark.asyncio
    async def test_shareable_code_format(self, manager):
        """Codes are six upper-case alphanumerics."""
        session = await manager.create_session("host", "Alice")

        assert len(session.shareable_code) == 6
        assert session.shareable_code.isalnum()
        assert session.shareable_code == session.shareable_code.upper()
        assert session.session_id.startswith("sess-")

    @pytest.mark.asyncio
    async def test_ten_thousand_unique_ids(self, manager, clock):
        """No two sessions share an id."""
        ids = set()
        for index in range(10_000):
            clock.advance(0.001)
            session = await manager.create_session(f"host{index}", "Host")
            ids.add(session.session_id)

        assert len(ids) == 10_000

    @pytest.mark.asyncio
    async def test_host_in_another_session(self, manager):
        """A host still seated in a live session cannot open a second one."""
        first = await manager.create_session("host", "Alice")

        with pytest.raises(PlayerInAnotherSession):
            await manager.create_session("host", "Alice")

        assert [s.session_id for s in manager.list_sessions()] == [first.session_id]

    @pytest.mark.asyncio
    async def test_id_exhaustion_raises(self, manager, monkeypatch):
        monkeypatch.setattr(
            manager_module, "generate_session_id", lambda now: ("sess-fixed", "FIX123")
        )
        await manager.create_session("host", "Alice")

        with pytest.raises(SessionIdExhausted):
            await manager.create_session("h2", "Dana")


class TestInitializePlayer:
    """Tests for initialize_player."""

    @pytest.mark.asyncio
    async def test_reinitialize_resets_player(self, manager):
        """Initializing again resets points, status and hand."""
        session = await manager.create_session("host", "Alice")
        player = await manager.initialize_player(session.session_id, "p2", "Bob")
        player.points = 3
        player.status = PlayerStatus.DISCONNECTED
        player.hand.append(rule_card())

        player = await manager.initialize_player(session.session_id, "p2", "Bob")

        assert player.points == 20
        assert player.status == PlayerStatus.ACTIVE
        assert player.hand == []

    @pytest.mark.asyncio
    async def test_does_not_join_session(self, manager):
        """initialize_player leaves Session.players alone."""
        session = await manager.create_session("host", "Alice")

        await manager.initialize_player(session.session_id, "p2", "Bob")

        assert session.players == ["host"]


class TestJoinSession:
    """Tests for join_session."""

    @pytest.mark.asyncio
    async def test_join_by_code(self, manager):
        """Players can join with the shareable code in any case."""
        session = await manager.create_session("host", "Alice")

        result = await manager.join_session(session.shareable_code.lower(), "p2", "Bob")

        assert result.success
        assert result.data["session_id"] == session.session_id
        assert session.players == ["host", "p2"]
        assert manager.get_player("p2").session_id == session.session_id

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        result = await manager.join_session("NOPE00", "p2", "Bob")

        assert not result.success
        assert result.error_code == ErrorCode.SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_duplicate_display_name(self, manager):
        """Display names are unique within a session."""
        session = await manager.create_session("host", "Alice")

        result = await manager.join_session(session.session_id, "p2", "alice")

        assert not result.success
        assert result.error_code == ErrorCode.DUPLICATE_PLAYER_NAME
        assert session.players == ["host"]

    @pytest.mark.asyncio
    async def test_session_full(self, clock, rng, mirror, rule_engine):
        """Joining a full session fails."""
        manager = GameManager(
            mirror=mirror, rule_engine=rule_engine, clock=clock, rng=rng,
            config=EngineConfig(max_players=2),
        )
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")

        result = await manager.join_session(session.session_id, "p3", "Carol")

        assert result.error_code == ErrorCode.SESSION_FULL

    @pytest.mark.asyncio
    async def test_cannot_join_started_game(self, manager, started_game):
        session = await started_game()

        result = await manager.join_session(session.session_id, "late", "Latecomer")

        assert result.error_code == ErrorCode.SESSION_NOT_JOINABLE

    @pytest.mark.asyncio
    async def test_already_joined(self, manager):
        """Joining twice is a successful no-op."""
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")

        result = await manager.join_session(session.session_id, "p2", "Bob")

        assert result.success
        assert result.data["already_joined"] is True
        assert session.players == ["host", "p2"]

    @pytest.mark.asyncio
    async def test_reconnect_keeps_points_and_hand(self, manager, started_game):
        """A disconnected player rejoining a started game keeps their state."""
        session = await started_game()
        player = manager.get_player("p2")
        player.points = 12
        card = rule_card()
        player.hand.append(card)
        await manager.handle_player_disconnect(session.session_id, "p2")

        result = await manager.join_session(session.session_id, "p2", "Bob")

        assert result.success
        assert result.data["reconnected"] is True
        assert player.status == PlayerStatus.ACTIVE
        assert player.points == 12
        assert card in player.hand

    @pytest.mark.asyncio
    async def test_player_in_another_session_is_rejected(self, manager):
        """Joining a second game leaves the first game's record untouched."""
        first = await manager.create_session("host", "Alice")
        await manager.join_session(first.session_id, "p2", "Bob")
        manager.get_player("p2").points = 7
        second = await manager.create_session("h2", "Dana")

        result = await manager.join_session(second.session_id, "p2", "Bob")

        assert result.error_code == ErrorCode.PLAYER_IN_ANOTHER_SESSION
        assert second.players == ["h2"]
        player = manager.get_player("p2")
        assert player.points == 7
        assert player.session_id == first.session_id

    @pytest.mark.asyncio
    async def test_player_who_left_can_join_elsewhere(self, manager):
        first = await manager.create_session("host", "Alice")
        await manager.join_session(first.session_id, "p2", "Bob")
        await manager.leave_session(first.session_id, "p2")
        second = await manager.create_session("h2", "Dana")

        result = await manager.join_session(second.session_id, "p2", "Bob")

        assert result.success
        assert manager.get_player("p2").session_id == second.session_id


class TestPlayerRecords:
    """Tests for track_player_status and assign_player_hand."""

    @pytest.mark.asyncio
    async def test_unknown_player(self, manager):
        session = await manager.create_session("host", "Alice")

        status = await manager.track_player_status(session.session_id, "ghost", "left")
        hand = await manager.assign_player_hand(session.session_id, "ghost", [])

        assert status.error_code == ErrorCode.PLAYER_NOT_FOUND
        assert hand.error_code == ErrorCode.PLAYER_NOT_FOUND
        assert manager.get_player("ghost") is None

    @pytest.mark.asyncio
    async def test_assign_hand(self, manager, mirror):
        session = await manager.create_session("host", "Alice")
        cards = [rule_card(), rule_card("No pointing")]

        result = await manager.assign_player_hand(session.session_id, "host", cards)

        assert result.success
        assert manager.get_player("host").hand == cards
        assert len(mirror.calls_to("update_player_hand")[-1].args["hand"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_status_value(self, manager):
        """An unrecognised status string is refused and changes nothing."""
        session = await manager.create_session("host", "Alice")

        result = await manager.track_player_status(session.session_id, "host", "asleep")

        assert result.error_code == ErrorCode.INVALID_PLAYER_STATUS
        assert manager.get_player("host").status == PlayerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_session_takes_no_lock(self, manager):
        """Calls naming a session that does not exist leave no lock behind."""
        for index in range(50):
            session_id = f"no-such-session-{index}"
            spun = await manager.spin(session_id, "p2")
            called = await manager.initiate_callout(session_id, "p2", "p3")
            ruled = await manager.adjudicate_callout(session_id, "host", True)
            status = await manager.track_player_status(session_id, "p2", "left")
            hand = await manager.assign_player_hand(session_id, "p2", [])
            dropped = await manager.handle_player_disconnect(session_id, "p2")
            for result in (spun, called, ruled, status, hand, dropped):
                assert result.error_code == ErrorCode.SESSION_NOT_FOUND

        assert manager.store._locks == {}


class TestStartGame:
    """Tests for start_game."""

    @pytest.mark.asyncio
    async def test_only_host_can_start(self, manager):
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")

        result = await manager.start_game(session.session_id, "p2")

        assert result.error_code == ErrorCode.NOT_HOST
        assert session.status == SessionStatus.LOBBY

    @pytest.mark.asyncio
    async def test_needs_two_players(self, manager):
        session = await manager.create_session("host", "Alice")

        result = await manager.start_game(session.session_id, "host")

        assert result.error_code == ErrorCode.NOT_ENOUGH_PLAYERS

    @pytest.mark.asyncio
    async def test_start_sets_turns_and_referee(self, manager, started_game):
        """Starting fixes the turn order and hands out the referee card."""
        session = await started_game()

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.started_at is not None
        info = manager.get_turn_info(session.session_id)
        assert info["order"] == ["host", "p2", "p3"]
        assert info["turn_number"] == 1
        assert session.referee == "host"
        referee = manager.get_player("host")
        assert referee.has_referee_card
        assert any(card.type == CardType.REFEREE for card in referee.hand)

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, manager, started_game):
        session = await started_game()

        result = await manager.start_game(session.session_id, "host")

        assert result.error_code == ErrorCode.INVALID_TRANSITION


class TestLeaveAndCleanup:
    """Tests for leave_session and cleanup_empty_session."""

    @pytest.mark.asyncio
    async def test_cleanup_keeps_active_session(self, manager):
        session = await manager.create_session("host", "Alice")

        assert await manager.cleanup_empty_session(session.session_id) is False
        assert manager.get_session(session.session_id) is session

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, manager, started_game):
        """An all-inactive session is removed once; later calls are no-ops."""
        session = await started_game()
        for player_id in session.players:
            manager.get_player(player_id).status = PlayerStatus.DISCONNECTED

        assert await manager.cleanup_empty_session(session.session_id) is True
        assert await manager.cleanup_empty_session(session.session_id) is False
        assert manager.get_session(session.session_id) is None
        assert manager.get_turn_info(session.session_id) is None

    @pytest.mark.asyncio
    async def test_leave_on_own_turn_advances(self, manager, started_game):
        session = await started_game()

        result = await manager.leave_session(session.session_id, "host")

        assert result.success
        assert manager.get_player("host").status == PlayerStatus.LEFT
        assert manager.get_current_player(session.session_id) == "p2"
        assert result.effects_of(EffectType.TURN_ADVANCED)

    @pytest.mark.asyncio
    async def test_last_player_leaving_removes_session(self, manager):
        session = await manager.create_session("host", "Alice")

        result = await manager.leave_session(session.session_id, "host")

        assert result.data["session_removed"] is True
        assert manager.get_session(session.session_id) is None

    @pytest.mark.asyncio
    async def test_removal_forgets_players(self, manager, started_game):
        """Player records and callout ledgers go with the session."""
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")

        for player_id in ("host", "p2", "p3"):
            result = await manager.leave_session(session.session_id, player_id)

        assert result.data["session_removed"] is True
        assert result.effects_of(EffectType.SESSION_REMOVED)
        for player_id in ("host", "p2", "p3"):
            assert manager.get_player(player_id) is None
        assert manager.callouts.recent_callouts("p2") == []


class TestEndGame:
    """Tests for end_game and end conditions."""

    @pytest.mark.asyncio
    async def test_manual_end(self, manager, started_game, rule_engine):
        """Ending a game produces ordered standings and clears rules."""
        session = await started_game()
        manager.get_player("p2").points = 25
        manager.get_player("p3").points = 25
        rule_engine.activate_rule(session.session_id, "No laughing")

        result = await manager.end_game(session.session_id)

        assert result.success
        assert session.status == SessionStatus.COMPLETED
        results = result.data["results"]
        assert results["end_condition"] == "manual_end"
        assert [s["player_id"] for s in results["final_standings"]][0] in ("p2", "p3")
        assert results["winners"] == ["p2", "p3"]
        assert await rule_engine.get_active_rules(session.session_id) == []

    @pytest.mark.asyncio
    async def test_end_requires_running_game(self, manager):
        session = await manager.create_session("host", "Alice")

        result = await manager.end_game(session.session_id)

        assert result.error_code == ErrorCode.GAME_NOT_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unknown_end_condition(self, manager, started_game):
        session = await started_game()

        result = await manager.end_game(session.session_id, "boredom")

        assert result.error_code == ErrorCode.INVALID_END_CONDITION
        assert session.status == SessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_end_cancels_pending_callout(self, manager, started_game):
        """A callout still waiting for the referee is cancelled, not left pending."""
        session = await started_game()
        await manager.initiate_callout(session.session_id, "p2", "p3")

        await manager.end_game(session.session_id)

        assert session.current_callout is None
        assert [c.status.value for c in session.callout_history] == ["cancelled"]
        assert manager.callouts.recent_callouts("p2")[0].status == CalloutStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_max_turns_ends_game(self, clock, rng, mirror, rule_engine):
        manager = GameManager(
            mirror=mirror, rule_engine=rule_engine, clock=clock, rng=rng,
            config=EngineConfig(max_turns=1),
        )
        session = await manager.create_session("host", "Alice")
        await manager.join_session(session.session_id, "p2", "Bob")
        await manager.start_game(session.session_id, "host")

        await manager.next_turn(session.session_id)
        result = await manager.next_turn(session.session_id)

        assert session.status == SessionStatus.COMPLETED
        assert session.results.end_condition.value == "max_turns"
        assert result.effects_of(EffectType.GAME_ENDED)

    @pytest.mark.asyncio
    async def test_last_player_standing(self, manager, started_game):
        session = await started_game()

        await manager.handle_player_disconnect(session.session_id, "p2")
        await manager.handle_player_disconnect(session.session_id, "p3")

        assert session.status == SessionStatus.COMPLETED
        assert session.results.end_condition.value == "last_player_standing"
        assert session.results.winners[0] in session.players


class TestMirrorFailures:
    """Mirror errors are logged and never undo local changes."""

    @pytest.mark.asyncio
    async def test_status_change_survives_mirror_error(self, clock, rng, rule_engine):
        manager = GameManager(
            mirror=FlakyMirror(), rule_engine=rule_engine, clock=clock, rng=rng,
        )
        session = await manager.create_session("host", "Alice")

        result = await manager.track_player_status(session.session_id, "host", "disconnected")

        assert result.success
        assert manager.get_player("host").status == PlayerStatus.DISCONNECTED
