"""
transitions.py
==============
State transition engine: game rules as pure functions.

    apply(intent, progress, records) -> TransitionResult

Nothing here performs I/O, keeps state, or asks the language model for an
opinion. The input progress is never mutated; the result carries a copy.

Rules
-----
inspect  Every evidence / suspect-info record triggered by the target that
         is not yet logged is appended and reported as newly revealed. A
         target with no records is a red herring: a normal, successful
         outcome that reveals nothing. Revealing a record that carries
         ``unlocks_location_id`` adds that location to known_locations.
move     Honoured only when the target is already a known location. The
         location's scene description comes back as a one-shot note.
talk     Identity transition (reserved for interrogation).
chat     Identity transition.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from models import DisclosureRecord, ImmutableRecords, Intent, Progress, TransitionResult

logger = logging.getLogger("crime_scene.transitions")


def _new_records(
    pool: Iterable[DisclosureRecord],
    target_id: str,
    already_logged: Iterable[DisclosureRecord],
) -> List[DisclosureRecord]:
    known = {rec.id for rec in already_logged}
    fresh: List[DisclosureRecord] = []
    for record in pool:
        if record.trigger_object_id == target_id and record.id not in known:
            fresh.append(record)
            known.add(record.id)
    return fresh


def _location_unlocks(records: Iterable[DisclosureRecord], known_locations: List[str]) -> List[str]:
    unlocked: List[str] = []
    for record in records:
        loc_id = record.unlocks_location_id
        if loc_id and loc_id not in known_locations and loc_id not in unlocked:
            unlocked.append(loc_id)
    return unlocked


def inspect(target_id: str, progress: Progress, records: ImmutableRecords) -> TransitionResult:
    new_evidence = _new_records(records.evidence_truth, target_id, progress.evidence_log)
    new_suspect  = _new_records(records.suspect_truth, target_id, progress.suspect_log)
    unlocked     = _location_unlocks(new_evidence + new_suspect, progress.known_locations)

    has_any_record = any(
        rec.trigger_object_id == target_id
        for rec in records.evidence_truth + records.suspect_truth
    )
    if new_evidence or new_suspect:
        outcome = "revealed"
    elif has_any_record:
        outcome = "already_known"
    else:
        outcome = "red_herring"

    new_progress = progress.model_copy(update={
        "evidence_log": progress.evidence_log + new_evidence,
        "suspect_log": progress.suspect_log + new_suspect,
        "known_locations": progress.known_locations + unlocked,
    })
    logger.debug(
        "inspect %s -> %s (evidence=%s, suspect_info=%s, unlocked=%s)",
        target_id, outcome,
        [r.id for r in new_evidence], [r.id for r in new_suspect], unlocked,
    )
    return TransitionResult(
        progress=new_progress,
        outcome=outcome,
        revealed_evidence=new_evidence,
        revealed_suspect_info=new_suspect,
        unlocked_location_ids=unlocked,
        target_name=target_id,
    )


def move(target_id: str, progress: Progress, records: ImmutableRecords) -> TransitionResult:
    location = records.location(target_id)
    if location is None or target_id not in progress.known_locations:
        logger.debug("move %s refused: not a known location", target_id)
        return TransitionResult(
            progress=progress.model_copy(),
            outcome="move_refused",
            target_name=location.name if location else target_id,
        )
    return TransitionResult(
        progress=progress.model_copy(update={"current_location": target_id}),
        outcome="moved",
        location_change_note=location.scene_description,
        target_name=location.name,
    )


def apply(intent: Intent, progress: Progress, records: ImmutableRecords) -> TransitionResult:
    """
    Compute the progress that follows from ``intent``.

    Args:
        intent:   Resolved intent for this turn.
        progress: Current progress snapshot. Not modified.
        records:  The case's immutable truth records and location graph.

    Returns:
        TransitionResult holding the new progress and what was revealed.
    """
    if intent.action == "inspect" and intent.target_id:
        return inspect(intent.target_id, progress, records)
    if intent.action == "move" and intent.target_id:
        return move(intent.target_id, progress, records)
    return TransitionResult(progress=progress.model_copy(), outcome="noop")
