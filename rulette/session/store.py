"""
Session Store - Registry of sessions, players and turn state.

The store is the only structure shared across sessions. It also hands
out one asyncio.Lock per session; every mutating game operation runs
under that lock so read-modify-write steps on a session never interleave.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import asyncio

from ..engine_core.state import Player, Session, TurnState


class SessionStore(ABC):
    """Storage interface used by the game manager."""

    @abstractmethod
    def get_session(self, session_id: str) -> Session | None: ...

    @abstractmethod
    def put_session(self, session: Session) -> None: ...

    @abstractmethod
    def delete_session(self, session_id: str) -> bool: ...

    @abstractmethod
    def list_sessions(self) -> list[Session]:
        """Snapshot of all sessions."""

    @abstractmethod
    def find_by_code(self, code: str) -> Session | None: ...

    @abstractmethod
    def get_player(self, player_id: str) -> Player | None: ...

    @abstractmethod
    def put_player(self, player: Player) -> None: ...

    @abstractmethod
    def delete_player(self, player_id: str) -> None: ...

    @abstractmethod
    def get_turn(self, session_id: str) -> TurnState | None: ...

    @abstractmethod
    def put_turn(self, session_id: str, turn: TurnState) -> None: ...

    @abstractmethod
    def delete_turn(self, session_id: str) -> None: ...

    @abstractmethod
    def lock(self, session_id: str) -> asyncio.Lock: ...

    def has_session(self, session_id: str) -> bool:
        return self.get_session(session_id) is not None

    def players_of(self, session: Session) -> list[Player]:
        """Player records for the session's members, in seat order."""
        players = []
        for player_id in session.players:
            player = self.get_player(player_id)
            if player is not None:
                players.append(player)
        return players

    def active_players_of(self, session: Session) -> list[Player]:
        return [p for p in self.players_of(session) if p.is_active]


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Sessions live until cleaned up."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._players: dict[str, Player] = {}
        self._turns: dict[str, TurnState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def put_session(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    def delete_session(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None)
        self._turns.pop(session_id, None)
        self._locks.pop(session_id, None)
        return removed is not None

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def find_by_code(self, code: str) -> Session | None:
        wanted = code.strip().upper()
        for session in list(self._sessions.values()):
            if session.shareable_code == wanted:
                return session
        return None

    def get_player(self, player_id: str) -> Player | None:
        return self._players.get(player_id)

    def put_player(self, player: Player) -> None:
        self._players[player.player_id] = player

    def delete_player(self, player_id: str) -> None:
        self._players.pop(player_id, None)

    def get_turn(self, session_id: str) -> TurnState | None:
        return self._turns.get(session_id)

    def put_turn(self, session_id: str, turn: TurnState) -> None:
        self._turns[session_id] = turn

    def delete_turn(self, session_id: str) -> None:
        self._turns.pop(session_id, None)

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock
