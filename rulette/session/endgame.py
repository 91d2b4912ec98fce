"""
End-game evaluation - When a game is over and who won.

Checked after point changes and turn advances, in this order:
zero_points, last_player_standing, no_active_players, max_turns.
"""

from __future__ import annotations

from ..config import EngineConfig
from ..engine_core.state import EndCondition, GameResults, PlayerStanding, Session, TurnState
from .store import SessionStore


def evaluate_end_condition(
    store: SessionStore,
    session: Session,
    turn: TurnState | None,
    config: EngineConfig,
) -> EndCondition | None:
    active = store.active_players_of(session)
    if any(player.points <= 0 for player in active):
        return EndCondition.ZERO_POINTS
    if len(active) == 1:
        return EndCondition.LAST_PLAYER_STANDING
    if not active:
        return EndCondition.NO_ACTIVE_PLAYERS
    if config.max_turns > 0 and turn is not None and turn.turn_number > config.max_turns:
        return EndCondition.MAX_TURNS
    return None


def compute_results(
    store: SessionStore,
    session: Session,
    turn: TurnState | None,
    end_condition: EndCondition,
    ended_at: float,
) -> GameResults:
    """Final standings sorted by points (highest first); ties share the win."""
    standings = sorted(
        (
            PlayerStanding(player_id=p.player_id, display_name=p.display_name, points=p.points)
            for p in store.players_of(session)
        ),
        key=lambda s: s.points,
        reverse=True,
    )
    winners: list[str] = []
    if standings:
        top = standings[0].points
        winners = [s.player_id for s in standings if s.points == top]

    started = session.started_at if session.started_at is not None else session.created_at
    return GameResults(
        end_condition=end_condition,
        final_standings=standings,
        winners=winners,
        total_players=len(standings),
        turns_played=turn.turn_number if turn else 0,
        total_points_transferred=session.total_points_transferred,
        game_duration=max(0.0, ended_at - started),
    )
