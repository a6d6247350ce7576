"""
guards.py
=========
Cheap checks that run around a turn so the model is only called when it
is worth calling, and its reply only reaches the player when it is safe.

Contains:
  - sanitize_message()     : whitespace-normalised message text
  - validate_message()     : minimum meaningful content / maximum length
  - is_repeated_message()  : same message as the previous N user turns
  - is_spoiler_request()   : "list all the evidence" style fishing
  - find_leaked_record()   : reply mentions a record not yet unlocked
  - RateLimiter            : per-session cooldown
  - SessionLocks           : one in-flight turn per session
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from config import GAME_CONFIG, SPOILER_PATTERNS, GameConfig
from errors import RateLimitError, ValidationError
from models import DisclosureRecord

logger = logging.getLogger("crime_scene.guards")


# ---------------------------------------------------------------------------
# Message checks
# ---------------------------------------------------------------------------

def sanitize_message(message: str) -> str:
    """Collapse runs of whitespace and trim."""
    return " ".join((message or "").split())


def validate_message(message: object, config: GameConfig = GAME_CONFIG) -> str:
    """
    Return the sanitised message or raise ValidationError.

    A message must be a string of at least ``min_message_chars`` characters
    containing at least one letter, and no longer than ``max_message_chars``.
    """
    if not isinstance(message, str):
        raise ValidationError("Message must be text.")
    text = sanitize_message(message)
    if len(text) < config.min_message_chars or not any(ch.isalpha() for ch in text):
        raise ValidationError(
            "Message is too short. Tell your partner what to check or where to go."
        )
    if len(text) > config.max_message_chars:
        raise ValidationError(
            f"Message is too long. Keep it under {config.max_message_chars} characters."
        )
    return text


def is_repeated_message(message: str, previous_user_messages: List[str], limit: int) -> bool:
    """
    True if ``message`` equals each of the last ``limit`` user messages.

    Comparison ignores case and whitespace differences.
    """
    if limit <= 0 or len(previous_user_messages) < limit:
        return False
    key = sanitize_message(message).casefold()
    return all(
        sanitize_message(prev).casefold() == key
        for prev in previous_user_messages[-limit:]
    )


def is_spoiler_request(message: str) -> bool:
    return any(pattern.search(message) for pattern in SPOILER_PATTERNS)


def find_leaked_record(
    text: str,
    truth: Iterable[DisclosureRecord],
    unlocked_ids: Iterable[str],
) -> Optional[str]:
    """
    Return the id of the first locked disclosure record the reply talks about.

    ``truth`` is any mix of evidence and suspect-info records.

    A record counts as leaked when the reply contains its description
    (longer than 10 characters) or its name (longer than 5 characters).
    Short names are ignored to avoid false positives on common words.
    """
    lowered  = (text or "").lower()
    unlocked = set(unlocked_ids)
    for record in truth:
        if record.id in unlocked:
            continue
        description = record.description.lower().strip()
        name        = record.name.lower().strip()
        if len(description) > 10 and description in lowered:
            return record.id
        if len(name) > 5 and name in lowered:
            return record.id
    return None


# ---------------------------------------------------------------------------
# Per-session rate limiting
# ---------------------------------------------------------------------------

class RateLimiter:
    """
    Process-local ``{session_id: last_accepted_at}`` cooldown.

    Only correct for a single-instance deployment; several instances would
    each keep their own map.
    """

    def __init__(
        self,
        cooldown_seconds: float = GAME_CONFIG.cooldown_seconds,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def check(self, session_id: str) -> None:
        """
        Accept a turn for ``session_id`` or raise RateLimitError.

        An accepted turn starts a new cooldown window.
        """
        if self.cooldown_seconds <= 0:
            return
        now = self._clock()
        with self._lock:
            self._prune(now)
            last = self._last.get(session_id)
            if last is not None and now - last < self.cooldown_seconds:
                retry_after = self.cooldown_seconds - (now - last)
                logger.warning("Rate limit hit for session %s (retry in %.1fs)", session_id, retry_after)
                raise RateLimitError(retry_after)
            self._last[session_id] = now

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._last.pop(session_id, None)

    def _prune(self, now: float) -> None:
        expired = [sid for sid, ts in self._last.items() if now - ts >= self.cooldown_seconds]
        for sid in expired:
            del self._last[sid]


# ---------------------------------------------------------------------------
# Per-session single flight
# ---------------------------------------------------------------------------

class SessionLocks:
    """
    Keyed mutexes guaranteeing at most one in-flight turn per session.

    Locks are created on demand and dropped once no turn holds or waits on
    them, so the map does not grow with every session ever played.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
            self._users[session_id] = self._users.get(session_id, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[session_id] -= 1
                if self._users[session_id] == 0:
                    del self._users[session_id]
                    del self._locks[session_id]

    def active_sessions(self) -> int:
        with self._guard:
            return len(self._locks)
