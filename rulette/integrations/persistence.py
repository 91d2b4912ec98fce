"""
Persistence Mirror - Outbound copy of session state.

The remote store is an at-least-once mirror, not a source of truth: the
engine writes to it after every in-memory mutation and reads from it in
exactly one place (the active roster used for referee draws).

InMemoryMirror implements the protocol for tests and local play. It keeps
a per-session roster document and an append-only call log.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Protocol
import logging


logger = logging.getLogger(__name__)


class PersistenceMirror(Protocol):
    """Async interface to the remote session store."""

    async def create_session(self, session_id: str, host_id: str, host_name: str) -> None:
        ...

    async def initialize_player(
        self, session_id: str, player_id: str, display_name: str, is_host: bool = False
    ) -> None:
        ...

    async def update_player_status(self, session_id: str, player_id: str, status: str) -> None:
        ...

    async def update_player_hand(
        self, session_id: str, player_id: str, hand: list[dict[str, Any]]
    ) -> None:
        ...

    async def update_player_points(self, session_id: str, player_id: str, points: int) -> None:
        ...

    async def update_referee_card(self, session_id: str, player_id: str | None) -> None:
        ...

    async def update_session_status(self, session_id: str, status: str) -> None:
        ...

    async def update_session_players(self, session_id: str, player_ids: list[str]) -> None:
        ...

    async def get_players_in_session(self, session_id: str) -> list[dict[str, Any]]:
        """Roster rows: {"uid", "status", "display_name"}."""
        ...


@dataclass
class MirrorCall:
    method: str
    session_id: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class InMemoryMirror:
    """
    Dict-backed mirror.

    `sessions` maps session id -> {"host_id", "status", "players",
    "referee"}; `rosters` maps session id -> player id -> row.
    """
    sessions: dict[str, dict[str, Any]] = field(default_factory=dict)
    rosters: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    calls: list[MirrorCall] = field(default_factory=list)

    def _record(self, method: str, session_id: str, **args: Any) -> None:
        self.calls.append(MirrorCall(method=method, session_id=session_id, args=args))

    def _row(self, session_id: str, player_id: str) -> dict[str, Any]:
        roster = self.rosters.setdefault(session_id, {})
        return roster.setdefault(
            player_id,
            {"uid": player_id, "status": "active", "display_name": player_id},
        )

    def calls_to(self, method: str) -> list[MirrorCall]:
        return [call for call in self.calls if call.method == method]

    async def create_session(self, session_id: str, host_id: str, host_name: str) -> None:
        self._record("create_session", session_id, host_id=host_id, host_name=host_name)
        self.sessions[session_id] = {
            "host_id": host_id,
            "status": "lobby",
            "players": [host_id],
            "referee": None,
        }
        row = self._row(session_id, host_id)
        row["display_name"] = host_name
        row["is_host"] = True

    async def initialize_player(
        self, session_id: str, player_id: str, display_name: str, is_host: bool = False
    ) -> None:
        self._record(
            "initialize_player", session_id,
            player_id=player_id, display_name=display_name, is_host=is_host,
        )
        row = self._row(session_id, player_id)
        row.update({"display_name": display_name, "status": "active", "is_host": is_host})

    async def update_player_status(self, session_id: str, player_id: str, status: str) -> None:
        self._record("update_player_status", session_id, player_id=player_id, status=status)
        self._row(session_id, player_id)["status"] = status

    async def update_player_hand(
        self, session_id: str, player_id: str, hand: list[dict[str, Any]]
    ) -> None:
        self._record("update_player_hand", session_id, player_id=player_id, hand=hand)
        self._row(session_id, player_id)["hand"] = hand

    async def update_player_points(self, session_id: str, player_id: str, points: int) -> None:
        self._record("update_player_points", session_id, player_id=player_id, points=points)
        self._row(session_id, player_id)["points"] = points

    async def update_referee_card(self, session_id: str, player_id: str | None) -> None:
        self._record("update_referee_card", session_id, player_id=player_id)
        for uid, row in self.rosters.get(session_id, {}).items():
            row["has_referee_card"] = uid == player_id
        self.sessions.setdefault(session_id, {})["referee"] = player_id

    async def update_session_status(self, session_id: str, status: str) -> None:
        self._record("update_session_status", session_id, status=status)
        self.sessions.setdefault(session_id, {})["status"] = status

    async def update_session_players(self, session_id: str, player_ids: list[str]) -> None:
        self._record("update_session_players", session_id, player_ids=list(player_ids))
        self.sessions.setdefault(session_id, {})["players"] = list(player_ids)

    async def get_players_in_session(self, session_id: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rosters.get(session_id, {}).values()]
