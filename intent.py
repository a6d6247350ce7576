"""
intent.py
=========
Keyword-based intent resolver.

Decides, from one free-text player message, whether the player wants to
inspect an object here, move somewhere, talk to someone, or just chat. It is
a single-pass classifier with no memory: every turn is resolved on its own,
using only the current location's affordances plus the location keywords.

Order matters and is fixed:
  1. interactables of the current location   -> inspect
  2. a movement cue + any location keyword   -> move
  3. a talk cue                              -> talk ("suspect")
  4. otherwise                               -> chat

Matching is case-insensitive and whole-word, so "desk" matches "check the
desk!" but not "deskside". "No match" is a normal result, never an error.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from config import MOVE_CUES, TALK_CUES
from models import Intent, Location, Progress

logger = logging.getLogger("crime_scene.intent")

TALK_TARGET = "suspect"


def contains_phrase(message: str, phrase: str) -> bool:
    """
    True if ``phrase`` occurs in ``message`` as a whole word or phrase.

    Word boundaries are Unicode-aware, so Turkish keywords like "şömine"
    match the same way English ones do.
    """
    phrase = phrase.strip()
    if not phrase:
        return False
    pattern = r"(?<!\w)" + re.escape(phrase) + r"(?!\w)"
    return re.search(pattern, message, re.IGNORECASE) is not None


def _first_match(message: str, phrases: Iterable[str]) -> Optional[str]:
    return next((p for p in phrases if contains_phrase(message, p)), None)


def resolve(message: str, location_graph: List[Location], progress: Progress) -> Intent:
    """
    Resolve the player's message to a single intent.

    Args:
        message:        Raw player text.
        location_graph: Every location of the case, in authored order.
        progress:       Current progress; only ``current_location`` is read.

    Returns:
        Intent with action inspect/move/talk/chat. ``target_id`` is the
        interactable id, the location id, the "suspect" sentinel, or None.
    """
    current = next((loc for loc in location_graph if loc.id == progress.current_location), None)

    # 1. Objects in the current location always win.
    if current is not None:
        for interactable in current.interactables:
            keyword = _first_match(message, interactable.keywords)
            if keyword:
                logger.debug("Intent inspect %s (keyword %r)", interactable.id, keyword)
                return Intent("inspect", interactable.id)

    # 2. Movement needs an explicit cue, then any location may match.
    #    Whether the move is honoured is the transition engine's call.
    cue = _first_match(message, MOVE_CUES)
    if cue:
        for location in location_graph:
            keyword = _first_match(message, [location.name, *location.keywords])
            if keyword:
                logger.debug("Intent move %s (cue %r, keyword %r)", location.id, cue, keyword)
                return Intent("move", location.id)

    # 3. Interrogation is recognised but not yet a mechanic.
    if _first_match(message, TALK_CUES):
        return Intent("talk", TALK_TARGET)

    return Intent("chat", None)
