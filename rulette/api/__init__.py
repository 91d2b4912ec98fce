"""
API Module - Client interface.

Exposes the engine via REST API (and a WebSocket effect stream):
1. Host creates a session and shares its code
2. Players join and the host starts the game
3. Clients send spins, draws, callouts and card actions
4. Every action returns its effects; failures carry an error code

All state is session-scoped. No persistent user accounts required.
"""

from .schemas import (
    # Requests
    CreateSessionRequest,
    JoinSessionRequest,
    CalloutRequest,
    AdjudicateRequest,
    # Responses
    SessionResponse,
    ActionResponse,
    ErrorResponse,
    # Shared
    PlayerInfo,
    CardInfo,
    CalloutInfo,
)
from .service import APIService
from .app import create_app, status_for_error

__all__ = [
    # Requests
    "CreateSessionRequest",
    "JoinSessionRequest",
    "CalloutRequest",
    "AdjudicateRequest",
    # Responses
    "SessionResponse",
    "ActionResponse",
    "ErrorResponse",
    # Shared
    "PlayerInfo",
    "CardInfo",
    "CalloutInfo",
    # Service
    "APIService",
    "create_app",
    "status_for_error",
]
