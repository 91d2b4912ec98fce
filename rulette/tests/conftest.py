"""
Pytest fixtures for Rulette tests.
"""

import pytest

from ..config import EngineConfig
from ..engine_core.state import Card, CardType, Session
from ..integrations import InMemoryMirror, InMemoryRuleEngine
from ..session import GameManager


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class SequenceRandom:
    """Random source that replays scripted draws, cycling when exhausted."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


def rule_card(front: str = "Speak only in questions", back: str | None = "Whisper everything", **kwargs) -> Card:
    return Card.create(CardType.RULE, front, back, **kwargs)


def prompt_card(text: str = "Sing the chorus of any song", **kwargs) -> Card:
    return Card.create(CardType.PROMPT, text, None, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> SequenceRandom:
    """Every draw is 0.0, so the first eligible player is always picked."""
    return SequenceRandom([0.0])


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def mirror() -> InMemoryMirror:
    return InMemoryMirror()


@pytest.fixture
def rule_engine() -> InMemoryRuleEngine:
    return InMemoryRuleEngine()


@pytest.fixture
def manager(clock, rng, config, mirror, rule_engine) -> GameManager:
    """Game manager wired to fakes."""
    return GameManager(
        mirror=mirror,
        rule_engine=rule_engine,
        clock=clock,
        rng=rng,
        config=config,
    )


@pytest.fixture
def started_game(manager):
    """
    Coroutine factory for an in-progress game.

    Players: host (Alice), p2 (Bob), p3 (Carol), plus any extras.
    With the default rng the host is drawn as referee and turn order is
    host, p2, p3.
    """
    async def _start(extra_players: int = 0) -> Session:
        session = await manager.create_session("host", "Alice")
        names = ["Bob", "Carol", "Dave", "Erin", "Frank"]
        for index in range(2 + extra_players):
            await manager.join_session(session.session_id, f"p{index + 2}", names[index])
        result = await manager.start_game(session.session_id, "host")
        assert result.success, result.error
        return session

    return _start
