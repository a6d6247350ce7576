"""
tags.py
=======
Extraction and stripping of the control tags the partner model may emit.

The model can declare, inside its free text:
  [ACTION_ID_START]desk[ACTION_ID_END]     the object/location it acted on
  [EVIDENCE UNLOCKED: clue_letter, other]  evidence ids it believes it revealed

``parse_reply`` is the single place these are read. Nothing it returns is
trusted until the orchestrator has checked the ids against the case's
immutable records.
"""

from __future__ import annotations

import re
from typing import List

from models import ParsedReply

_TARGET_RE   = re.compile(r"\[ACTION_ID_START\]\s*(.*?)\s*\[ACTION_ID_END\]", re.IGNORECASE | re.DOTALL)
_EVIDENCE_RE = re.compile(r"\[EVIDENCE[ _]UNLOCKED:\s*([^\]]*)\]", re.IGNORECASE)
# Half-emitted markers left behind when the model truncates or improvises.
_STRAY_RE    = re.compile(r"\[(?:/?ACTION_ID_(?:START|END)|EVIDENCE[ _]UNLOCKED[^\]]*)\]", re.IGNORECASE)
# An unpaired START marker takes the id glued to it along.
_OPEN_TARGET_RE = re.compile(r"\[ACTION_ID_START\][\w-]*", re.IGNORECASE)
_SPACES_RE   = re.compile(r"[ \t]{2,}")
_BLANKS_RE   = re.compile(r"\n{3,}")


def _split_ids(raw: str) -> List[str]:
    return [part.strip().strip("'\"`") for part in raw.split(",") if part.strip().strip("'\"`")]


def strip_tags(text: str) -> str:
    cleaned = _TARGET_RE.sub("", text)
    cleaned = _EVIDENCE_RE.sub("", cleaned)
    cleaned = _OPEN_TARGET_RE.sub("", cleaned)
    cleaned = _STRAY_RE.sub("", cleaned)
    cleaned = _SPACES_RE.sub(" ", cleaned)
    cleaned = _BLANKS_RE.sub("\n\n", cleaned)
    return "\n".join(line.rstrip() for line in cleaned.splitlines()).strip()


def parse_reply(raw: str) -> ParsedReply:
    """
    Split a raw model reply into visible text and declared ids.

    The first non-empty target tag wins. Evidence ids from every evidence
    tag are collected in order, without duplicates.
    """
    raw = raw or ""

    target_id = None
    for match in _TARGET_RE.finditer(raw):
        candidate = match.group(1).strip().strip("'\"`")
        if candidate:
            target_id = candidate
            break

    evidence_ids: List[str] = []
    for match in _EVIDENCE_RE.finditer(raw):
        for evidence_id in _split_ids(match.group(1)):
            if evidence_id not in evidence_ids:
                evidence_ids.append(evidence_id)

    return ParsedReply(
        text=strip_tags(raw),
        target_id=target_id,
        declared_evidence_ids=evidence_ids,
    )
