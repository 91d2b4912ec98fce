"""
Engine exceptions.

Public operations never raise these to their callers; the game manager
converts them into failed ActionResults at the operation boundary.
"""

from __future__ import annotations


class RuletteError(Exception):
    """Base class for engine errors."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class InvalidTransition(RuletteError):
    """A state machine was asked to make a move it does not allow."""

    error_code = "INVALID_TRANSITION"


class SessionIdExhausted(RuletteError):
    """No unique session id could be generated."""

    error_code = "SESSION_ID_EXHAUSTED"


class PlayerInAnotherSession(RuletteError):
    """The player is still seated in a different live session."""

    error_code = "PLAYER_IN_ANOTHER_SESSION"
