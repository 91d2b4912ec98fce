"""
Tests for game records.

Tests:
- Card sides, flipping and cloning
- Player point clamping
- Callout state machine
- Turn wrap-around
- Session status transitions
"""

import pytest

from ..engine_core.errors import InvalidTransition
from ..engine_core.state import (
    Callout,
    CalloutStatus,
    Card,
    CardSide,
    CardType,
    CloneMap,
    Player,
    Session,
    SessionStatus,
    TurnState,
)


class TestCard:
    """Tests for Card."""

    def test_side_aliases(self):
        """side_a/side_b map onto front/back."""
        card = Card.create(CardType.RULE, "Front text", "Back text")

        assert card.front_rule == "Front text"
        assert card.side_b == "Back text"
        assert card.current_text == "Front text"

    def test_flip_toggles_side(self):
        """Flipping twice returns to the front."""
        card = Card.create(CardType.RULE, "Front", "Back")

        assert card.flip()
        assert card.current_side == CardSide.BACK
        assert card.is_flipped
        assert card.current_text == "Back"

        assert card.flip()
        assert card.current_side == CardSide.FRONT
        assert not card.is_flipped

    def test_prompt_cannot_flip(self):
        """Prompt cards never flip, even with back text."""
        card = Card.create(CardType.PROMPT, "Do a dance", "Sing a song")

        assert not card.flip()
        assert card.current_side == CardSide.FRONT

    def test_one_sided_card_cannot_flip(self):
        """A card without back text cannot flip."""
        card = Card.create(CardType.RULE, "Only a front")

        assert not card.can_flip
        assert not card.flip()

    def test_clone_is_independent(self):
        """A clone has its own id and its own flip state."""
        original = Card.create(CardType.RULE, "Front", "Back")
        clone = original.create_clone(owner_id="p1")

        assert clone.id != original.id
        assert clone.is_clone
        assert clone.clone_source.card_id == original.id
        assert clone.clone_source.owner_id == "p1"

        clone.flip()
        assert clone.current_side == CardSide.BACK
        assert original.current_side == CardSide.FRONT

    def test_clone_copies_current_side(self):
        """A clone starts on the side its source is showing."""
        original = Card.create(CardType.RULE, "Front", "Back")
        original.flip()

        clone = original.create_clone(owner_id="p1")

        assert clone.current_side == CardSide.BACK
        assert clone.current_text == "Back"


class TestPlayer:
    """Tests for Player."""

    def test_deduct_clamps_at_zero(self):
        """Points never go negative."""
        player = Player(player_id="p1", display_name="Alice", points=1)

        assert player.deduct_points(3) == 1
        assert player.points == 0
        assert player.deduct_points(1) == 0
        assert player.points == 0

    def test_pop_card(self):
        """pop_card removes exactly the requested card."""
        keep = Card.create(CardType.RULE, "Keep")
        drop = Card.create(CardType.RULE, "Drop")
        player = Player(player_id="p1", display_name="Alice", hand=[keep, drop])

        assert player.pop_card(drop.id) is drop
        assert player.hand == [keep]
        assert player.pop_card("missing") is None


class TestCallout:
    """Tests for the callout state machine."""

    def test_resolve_valid(self):
        """Resolving stamps the referee decision."""
        callout = Callout(caller_id="p1", accused_player_id="p2", timestamp=10.0)

        callout.resolve("ref", True, 12.0)

        assert callout.status == CalloutStatus.VALID
        assert callout.referee_decision.referee_id == "ref"
        assert callout.referee_decision.timestamp == 12.0
        assert not callout.is_pending

    def test_resolve_twice_fails(self):
        """A decided callout cannot be decided again."""
        callout = Callout(caller_id="p1", accused_player_id="p2", timestamp=10.0)
        callout.resolve("ref", False, 12.0)

        with pytest.raises(InvalidTransition) as excinfo:
            callout.resolve("ref", True, 13.0)

        assert excinfo.value.error_code == "CALLOUT_ALREADY_DECIDED"
        assert callout.status == CalloutStatus.INVALID


class TestTurnState:
    """Tests for TurnState."""

    def test_turn_number_increments_on_wrap(self):
        """turn_number goes up exactly when the index returns to 0."""
        turn = TurnState(order=["a", "b", "c"])

        assert not turn.advance()
        assert turn.turn_number == 1
        assert not turn.advance()
        assert turn.advance()
        assert turn.current_player_index == 0
        assert turn.turn_number == 2

    def test_advance_resets_spin(self):
        """A new turn can spin again."""
        turn = TurnState(order=["a", "b"], has_spun=True)

        turn.advance()

        assert not turn.has_spun


class TestCloneMap:
    """Tests for CloneMap."""

    def test_detach_drops_empty_entry(self):
        clone_map = CloneMap()
        clone_map.register("src", "p1", "c1")
        clone_map.register("src", "p2", "c2")

        clone_map.detach("src", "c1")
        assert [ref.clone_id for ref in clone_map.clones_of("src")] == ["c2"]

        clone_map.detach("src", "c2")
        assert "src" not in clone_map.entries


class TestSessionTransitions:
    """Tests for session status transitions."""

    def test_allowed_transitions(self):
        session = Session(session_id="s", host_id="h")

        assert session.transition_to(SessionStatus.IN_PROGRESS) == SessionStatus.LOBBY
        session.transition_to(SessionStatus.COMPLETED)
        session.transition_to(SessionStatus.LOBBY)

        assert session.status == SessionStatus.LOBBY

    def test_completed_cannot_resume(self):
        """completed -> in-progress is not allowed."""
        session = Session(session_id="s", host_id="h", status=SessionStatus.COMPLETED)

        with pytest.raises(InvalidTransition):
            session.transition_to(SessionStatus.IN_PROGRESS)

        assert session.status == SessionStatus.COMPLETED
