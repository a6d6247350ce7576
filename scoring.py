"""
scoring.py
==========
Deterministic, side-effect-free accusation judging.

Kept apart from the engine so it can be unit-tested on its own. The player
names one suspect and one piece of evidence; the verdict depends on which of
the two match the case's correct accusation.
"""

from __future__ import annotations

from models import CorrectAccusation, Verdict


_VERDICTS = {
    (True, True): (
        "case_closed", "Case Closed!",
        "You correctly identified the culprit and the key evidence.",
    ),
    (True, False): (
        "wrong_evidence", "You Lost!",
        "The suspect was correct, but that was the wrong piece of evidence.",
    ),
    (False, True): (
        "wrong_suspect", "You Lost!",
        "The evidence was relevant, but you accused the wrong suspect.",
    ),
    (False, False): (
        "both_wrong", "You Lost!",
        "Both the suspect and the evidence were incorrect.",
    ),
}


def judge_accusation(suspect_id: str, evidence_id: str, answer: CorrectAccusation) -> Verdict:
    """
    Judge an accusation against the case's answer.

    Args:
        suspect_id:  The accused suspect.
        evidence_id: The evidence the player says proves it.
        answer:      The case's correct accusation.

    Returns:
        Verdict with one of four outcomes:
            case_closed     both match
            wrong_evidence  suspect matches, evidence does not
            wrong_suspect   evidence matches, suspect does not
            both_wrong      neither matches

    Examples:
        >>> judge_accusation("lydia", "brass_candlestick", answer).outcome
        'case_closed'
    """
    suspect_match  = suspect_id == answer.suspect_id
    evidence_match = evidence_id == answer.evidence_id
    outcome, title, message = _VERDICTS[(suspect_match, evidence_match)]
    return Verdict(
        outcome=outcome,
        title=title,
        message=message,
        suspect_match=suspect_match,
        evidence_match=evidence_match,
    )
