"""
errors.py
=========
Error taxonomy for the crime-scene partner game.

Internal components raise these; only the turn orchestrator and the HTTP
layer translate them into player-facing responses. Every error carries the
HTTP status it maps to and a ``public_message`` that is safe to show the
player. The exception's own ``str()`` may hold internal detail for logs.

"No intent resolved" and "red herring inspected" are normal outcomes and
are never represented here.
"""

from __future__ import annotations

from typing import Optional


BAD_SIGNAL_MESSAGE = "Bad signal at the crime scene—try again? 🚨"


class GameError(Exception):
    """Base class for every error the game surfaces over HTTP."""

    status_code: int = 500
    default_public_message: str = "Something went wrong."

    def __init__(self, message: str = "", public_message: Optional[str] = None) -> None:
        super().__init__(message or public_message or self.default_public_message)
        self.public_message = public_message or message or self.default_public_message


class ValidationError(GameError):
    """Bad or missing input."""

    status_code = 400
    default_public_message = "Invalid input."


class NotFoundError(GameError):
    """A session or case does not exist."""

    status_code = 404
    default_public_message = "Not found."


class RateLimitError(GameError):
    """A session sent turns faster than the cooldown allows."""

    status_code = 429
    default_public_message = "Please wait before sending another message."

    def __init__(self, retry_after: float, message: str = "") -> None:
        self.retry_after = max(0.0, retry_after)
        seconds = max(1, int(round(self.retry_after)))
        super().__init__(
            message or f"Please wait {seconds}s before sending another message.",
        )


class PersistenceError(GameError):
    """The store failed to read or write. Details stay in the logs."""

    status_code = 500
    default_public_message = "Failed to access game data."

    def __init__(self, message: str = "") -> None:
        super().__init__(message, public_message=self.default_public_message)


class ConflictError(PersistenceError):
    """A progress write was based on a stale version of the session."""

    status_code = 409
    default_public_message = "The game was updated elsewhere. Please retry."


class UpstreamModelError(GameError):
    """The language model failed or returned something unusable."""

    status_code = 500
    default_public_message = BAD_SIGNAL_MESSAGE

    def __init__(self, message: str = "") -> None:
        super().__init__(message, public_message=BAD_SIGNAL_MESSAGE)
