"""
models.py
=========
Shared data models for the crime-scene partner game.

Contains:
  - Case-content schemas (pydantic): Interactable, Location, DisclosureRecord,
    SuspectProfile, Victim, CorrectAccusation, Case, plus the read views
    CaseSummary, InitialData, ImmutableRecords.
  - Session schemas (pydantic): ChatMessage, Progress, ModelRequest.
  - In-process results (dataclasses): Intent, TransitionResult, ParsedReply,
    TurnResult, Verdict.

Every pydantic model serialises with camelCase keys (``by_alias=True``) so the
same shapes travel over HTTP and into the session store, while Python code
uses snake_case attributes. Dataclasses are used for values that never leave
the process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Case content (immutable at runtime)
# ---------------------------------------------------------------------------

class Interactable(CamelModel):
    """An object in a location that an inspect intent can target."""

    id:       str
    keywords: List[str] = Field(default_factory=list)


class Location(CamelModel):
    """
    One node of the case's location graph.

    Attributes:
        id:                Stable identifier referenced by progress.
        name:              Display name used in the context block.
        scene_description: Text the partner relays on arrival.
        keywords:          Words that let a free-text move resolve here.
        interactables:     Ordered; earlier entries win keyword ties.
    """

    id:                str
    name:              str
    scene_description: str = ""
    keywords:          List[str] = Field(default_factory=list)
    interactables:     List[Interactable] = Field(default_factory=list)


class DisclosureRecord(CamelModel):
    """
    An evidence or suspect-info entry revealed by inspecting a trigger object.

    ``description`` is the verbatim text the partner may relay once the record
    is unlocked. ``unlocks_location_id`` makes a reveal open a new location.
    """

    id:                  str
    name:                str
    description:         str
    trigger_object_id:   str
    suspect_id:          Optional[str] = None
    unlocks_location_id: Optional[str] = None


class SuspectProfile(CamelModel):
    """Public roster entry. Safe to show both the player and the model."""

    id:                   str
    name:                 str
    trait:                str = ""
    physical_description: str = ""
    relation_to_victim:   str = ""


class Victim(CamelModel):
    name:        str
    age:         Optional[int] = None
    occupation:  str = ""
    description: str = ""


class CorrectAccusation(CamelModel):
    suspect_id:  str
    evidence_id: str


class Case(CamelModel):
    """
    A full case as authored. Only ever read at runtime.

    ``evidence_truth``, ``suspect_truth`` and ``correct_accusation`` are the
    secret vault: they reach the model one disclosure record at a time and
    the answer never reaches it at all.
    """

    id:                 str
    title:              str
    synopsis:           str
    case_number:        str = "000"
    victims:            List[Victim] = Field(default_factory=list)
    suspects:           List[SuspectProfile] = Field(default_factory=list)
    start_location_id:  str
    locations:          List[Location]
    evidence_truth:     List[DisclosureRecord] = Field(default_factory=list)
    suspect_truth:      List[DisclosureRecord] = Field(default_factory=list)
    correct_accusation: CorrectAccusation

    @model_validator(mode="after")
    def _check_graph(self) -> "Case":
        location_ids = {loc.id for loc in self.locations}
        if self.start_location_id not in location_ids:
            raise ValueError(
                f"start_location_id {self.start_location_id!r} is not a location of case {self.id!r}"
            )
        for record in self.evidence_truth + self.suspect_truth:
            if record.unlocks_location_id and record.unlocks_location_id not in location_ids:
                raise ValueError(
                    f"record {record.id!r} unlocks unknown location {record.unlocks_location_id!r}"
                )
        return self


class CaseSummary(CamelModel):
    id:          str
    title:       str
    synopsis:    str
    case_number: str


class EvidenceShell(CamelModel):
    """Evidence id and name only, for UI listing."""

    id:   str
    name: str


class InitialData(CamelModel):
    """Public view of a case: everything here may be disclosed."""

    id:                str
    title:             str
    synopsis:          str
    case_number:       str
    victims:           List[Victim]
    suspects:          List[SuspectProfile]
    start_location_id: str
    evidence_shells:   List[EvidenceShell]


class ImmutableRecords(CamelModel):
    """Truth view of a case. Never serialised towards the model or player."""

    evidence_truth:     List[DisclosureRecord]
    suspect_truth:      List[DisclosureRecord]
    correct_accusation: CorrectAccusation
    location_graph:     List[Location]

    def location(self, location_id: Optional[str]) -> Optional[Location]:
        return next((loc for loc in self.location_graph if loc.id == location_id), None)

    def evidence(self, evidence_id: str) -> Optional[DisclosureRecord]:
        return next((rec for rec in self.evidence_truth if rec.id == evidence_id), None)


# ---------------------------------------------------------------------------
# Session progress
# ---------------------------------------------------------------------------

class ChatMessage(CamelModel):
    role:    Literal["user", "assistant"]
    content: str


class Progress(CamelModel):
    """
    The evolving state of one session.

    ``evidence_log`` and ``suspect_log`` only ever grow; ``known_locations``
    only grows through explicit unlocks. ``version``, ``created_at`` and
    ``updated_at`` are owned by the session store.
    """

    current_location:   str
    known_locations:    List[str]
    evidence_log:       List[DisclosureRecord] = Field(default_factory=list)
    suspect_log:        List[DisclosureRecord] = Field(default_factory=list)
    chat_history:       List[ChatMessage] = Field(default_factory=list)
    short_term_memory:  List[ChatMessage] = Field(default_factory=list)
    long_term_summary:  str = ""
    turn_count:         int = 0
    stuck_counter:      int = 0
    summarized_through: int = 0
    version:            int = 0
    created_at:         Optional[datetime] = None
    updated_at:         Optional[datetime] = None

    def evidence_ids(self) -> List[str]:
        return [rec.id for rec in self.evidence_log]

    def suspect_info_ids(self) -> List[str]:
        return [rec.id for rec in self.suspect_log]

    def user_messages(self) -> List[str]:
        return [m.content for m in self.chat_history if m.role == "user"]


class SessionRecord(CamelModel):
    """A stored session row as returned by the session store."""

    session_id:       str
    case_id:          str
    user_id:          Optional[str] = None
    progress:         Progress
    is_solved:        bool = False
    final_accusation: Optional[Dict[str, str]] = None


class ModelRequest(CamelModel):
    """
    Everything the language-model collaborator receives for one turn.

    The context block is the only channel carrying game facts.
    """

    system_preamble:   str
    context_block:     str
    recent_history:    List[ChatMessage] = Field(default_factory=list)
    long_term_summary: str = ""
    user_message:      str


# ---------------------------------------------------------------------------
# In-process results
# ---------------------------------------------------------------------------

IntentAction = Literal["inspect", "move", "talk", "chat"]


@dataclass(frozen=True)
class Intent:
    """What the player referred to this turn."""

    action:    IntentAction
    target_id: Optional[str] = None


TransitionOutcome = Literal[
    "revealed", "red_herring", "already_known", "moved", "move_refused", "noop",
]


@dataclass
class TransitionResult:
    """
    Output of the state transition engine.

    Attributes:
        progress:                  The new progress (a copy, never the input).
        outcome:                   Short label of what happened, for the
                                   context block and logs.
        revealed_evidence:         Records unlocked this turn.
        revealed_suspect_info:     Suspect-info records unlocked this turn.
        location_change_note:      Scene description of a location just
                                   entered. Rendered once, never persisted.
        unlocked_location_ids:     Locations added to known_locations.
        target_name:               Display name of the inspect/move target.
    """

    progress:              Progress
    outcome:               TransitionOutcome = "noop"
    revealed_evidence:     List[DisclosureRecord] = field(default_factory=list)
    revealed_suspect_info: List[DisclosureRecord] = field(default_factory=list)
    location_change_note:  Optional[str] = None
    unlocked_location_ids: List[str] = field(default_factory=list)
    target_name:           Optional[str] = None

    @property
    def made_progress(self) -> bool:
        return bool(
            self.revealed_evidence
            or self.revealed_suspect_info
            or self.outcome == "moved"
        )


@dataclass
class ParsedReply:
    """A raw model reply split into player-visible text and control tags."""

    text:                  str
    target_id:             Optional[str] = None
    declared_evidence_ids: List[str] = field(default_factory=list)


@dataclass
class TurnResult:
    """What the orchestrator hands back for one chat turn."""

    response_text:             str
    unlocked_evidence_ids:     List[str] = field(default_factory=list)
    unlocked_suspect_info_ids: List[str] = field(default_factory=list)
    current_location:          Optional[str] = None
    model_called:              bool = True

    def to_json_dict(self) -> dict:
        return {
            "responseText": self.response_text,
            "unlockedEvidenceIds": list(self.unlocked_evidence_ids),
            "unlockedSuspectInfoIds": list(self.unlocked_suspect_info_ids),
            "currentLocation": self.current_location,
        }


VerdictOutcome = Literal["case_closed", "wrong_evidence", "wrong_suspect", "both_wrong"]


@dataclass(frozen=True)
class Verdict:
    outcome:        VerdictOutcome
    title:          str
    message:        str
    suspect_match:  bool
    evidence_match: bool

    @property
    def solved(self) -> bool:
        return self.outcome == "case_closed"

    def to_json_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "title": self.title,
            "message": self.message,
            "suspectCorrect": self.suspect_match,
            "evidenceCorrect": self.evidence_match,
        }
