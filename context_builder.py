"""
context_builder.py
==================
Renders the per-turn context block: the only channel through which the
partner model learns game facts.

The block is rebuilt from authoritative state every turn. It carries the
public case briefing, where the partner stands, what has been unlocked so
far, and a clearly delimited NEWLY DISCOVERED section holding only the
verbatim descriptions unlocked this turn. Nothing from the truth records
that is not in the progress logs is ever rendered, and the accusation answer
is not an input at all.

Size is bounded by ``GAME_CONFIG.context_max_chars``: when the accumulated
log would push the block past it, older entries are listed by name only.
Newly discovered text is always rendered in full.
"""

from __future__ import annotations

from typing import List, Optional

from config import GAME_CONFIG
from models import DisclosureRecord, ImmutableRecords, InitialData, Progress, TransitionResult

STATE_OPEN  = "[DYNAMIC_GAME_STATE]"
STATE_CLOSE = "[/DYNAMIC_GAME_STATE]"
NEW_OPEN    = "[NEWLY DISCOVERED EVIDENCE]"
NEW_CLOSE   = "[/NEWLY DISCOVERED EVIDENCE]"

_OUTCOME_NOTES = {
    "red_herring": (
        "You checked {target}. Nothing useful there. Say so plainly; do not invent a clue."
    ),
    "already_known": (
        "You already went over {target}. Nothing new; you may recap what is in the log."
    ),
    "move_refused": (
        "Your partner wants to go to {target}, but you have no lead that gets you "
        "there yet. Stay where you are and say you need a reason to go."
    ),
}


def _briefing(initial: InitialData) -> List[str]:
    lines = [
        f"Case: {initial.title} ({initial.case_number})",
        f"Synopsis: {initial.synopsis}",
    ]
    for victim in initial.victims:
        details = ", ".join(p for p in [
            f"{victim.age}" if victim.age is not None else "",
            victim.occupation,
            victim.description,
        ] if p)
        lines.append(f"Victim: {victim.name}" + (f" ({details})" if details else ""))
    if initial.suspects:
        lines.append("Suspects:")
        for s in initial.suspects:
            parts = [p for p in [s.relation_to_victim, s.trait, s.physical_description] if p]
            lines.append(f"  - {s.name}: " + "; ".join(parts))
    return lines


def _log_lines(title: str, log: List[DisclosureRecord], names_only: bool) -> List[str]:
    if not log:
        return [f"{title}: none yet."]
    lines = [f"{title}:"]
    for record in log:
        if names_only:
            lines.append(f"  - {record.name}")
        else:
            lines.append(f"  - {record.name}: {record.description}")
    return lines


def _location_lines(progress: Progress, records: ImmutableRecords) -> List[str]:
    current = records.location(progress.current_location)
    known = [records.location(loc_id) for loc_id in progress.known_locations]
    lines = [f"Current location: {current.name if current else progress.current_location}"]
    lines.append("Places you can go: " + ", ".join(loc.name for loc in known if loc is not None))
    if current is not None and current.interactables:
        lines.append("Things you can see here (id: what it is):")
        for item in current.interactables:
            label = item.keywords[0] if item.keywords else item.id
            lines.append(f"  - {item.id}: {label}")
    return lines


def render(
    progress: Progress,
    newly_revealed: List[DisclosureRecord],
    records: ImmutableRecords,
    initial: InitialData,
    transition: Optional[TransitionResult] = None,
) -> str:
    """
    Build the context block for one turn.

    Args:
        progress:       Progress after this turn's transition.
        newly_revealed: Records unlocked this turn (evidence and suspect info).
        records:        Immutable records; only the location graph is read.
        initial:        Public case data for the briefing.
        transition:     This turn's transition, for the one-shot location
                        note and red-herring / refused-move hints.

    Returns:
        The delimited context text.
    """
    fresh_ids = {rec.id for rec in newly_revealed}
    older_evidence = [r for r in progress.evidence_log if r.id not in fresh_ids]
    older_suspect  = [r for r in progress.suspect_log if r.id not in fresh_ids]

    def assemble(names_only: bool) -> str:
        lines: List[str] = [STATE_OPEN]
        lines += _briefing(initial)
        lines.append("")
        lines += _location_lines(progress, records)
        lines.append("")
        lines += _log_lines("Evidence logged so far", older_evidence, names_only)
        lines += _log_lines("Suspect information logged so far", older_suspect, names_only)

        if transition is not None and transition.location_change_note:
            lines += ["", "[LOCATION CHANGE]", transition.location_change_note, "[/LOCATION CHANGE]"]

        lines += ["", NEW_OPEN]
        if newly_revealed:
            for record in newly_revealed:
                lines.append(f"- {record.name} (id: {record.id})")
                lines.append(f"  Description: {record.description}")
        else:
            lines.append("Nothing new this turn.")
        lines.append(NEW_CLOSE)

        notes: List[str] = []
        if transition is not None and transition.outcome in _OUTCOME_NOTES:
            notes.append(_OUTCOME_NOTES[transition.outcome].format(target=transition.target_name))
        if progress.stuck_counter >= 3:
            notes.append(
                f"Your partner has gone {progress.stuck_counter} turns without progress. "
                "Do not give the answer; recap the clues or point at something unchecked here."
            )
        if notes:
            lines += ["", "[NOTES]", *notes, "[/NOTES]"]

        lines.append(STATE_CLOSE)
        return "\n".join(lines)

    block = assemble(names_only=False)
    if len(block) > GAME_CONFIG.context_max_chars:
        block = assemble(names_only=True)
    return block
