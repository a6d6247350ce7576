"""
case_repository.py
==================
Read-only accessor for authored cases.

The accessor exposes three views of a case and no way to change one:

    repo.get_summaries()             -> [CaseSummary, ...]
    repo.get_initial_data(case_id)   -> InitialData       (safe to disclose)
    repo.get_immutable_records(id)   -> ImmutableRecords  (the secret vault)

Having no mutation operation here is what keeps the puzzle's ground truth
out of reach of both the player and the model. Cases enter the database
only through ``seed_cases`` at startup.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select

from db import CaseRow, Database
from errors import NotFoundError, ValidationError
from models import Case, CaseSummary, EvidenceShell, ImmutableRecords, InitialData

logger = logging.getLogger("crime_scene.case_repository")


class CaseRepository:
    """Read-only views over the ``cases`` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def get_summaries(self) -> List[CaseSummary]:
        with self.database.session_scope() as session:
            rows = session.execute(select(CaseRow).order_by(CaseRow.created_at, CaseRow.id)).scalars().all()
            return [
                CaseSummary(
                    id=row.id,
                    title=row.title,
                    synopsis=row.synopsis,
                    case_number=row.case_number or "000",
                )
                for row in rows
            ]

    def get_case(self, case_id: str) -> Case:
        """
        Load and validate the full case.

        Raises:
            NotFoundError:    No case with this id.
            PersistenceError: The database failed (raised by session_scope).
        """
        with self.database.session_scope() as session:
            row = session.get(CaseRow, case_id)
            if row is None:
                raise NotFoundError(f"case {case_id!r} not found", public_message="Case not found")
            payload = row.payload
        return Case.model_validate(payload)

    def get_initial_data(self, case_id: str) -> InitialData:
        case = self.get_case(case_id)
        return InitialData(
            id=case.id,
            title=case.title,
            synopsis=case.synopsis,
            case_number=case.case_number,
            victims=case.victims,
            suspects=case.suspects,
            start_location_id=case.start_location_id,
            evidence_shells=[EvidenceShell(id=rec.id, name=rec.name) for rec in case.evidence_truth],
        )

    def get_immutable_records(self, case_id: str) -> ImmutableRecords:
        case = self.get_case(case_id)
        return ImmutableRecords(
            evidence_truth=case.evidence_truth,
            suspect_truth=case.suspect_truth,
            correct_accusation=case.correct_accusation,
            location_graph=case.locations,
        )


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def seed_cases(database: Database, cases: Iterable[Case]) -> int:
    """
    Insert or refresh authored cases. Returns the number of cases written.

    Existing rows keep their ``created_at`` so the listing order is stable.
    """
    written = 0
    with database.session_scope() as session:
        for case in cases:
            payload = case.to_json_dict()
            row = session.get(CaseRow, case.id)
            if row is None:
                session.add(CaseRow(
                    id=case.id,
                    title=case.title,
                    synopsis=case.synopsis,
                    case_number=case.case_number,
                    payload=payload,
                ))
            else:
                row.title       = case.title
                row.synopsis    = case.synopsis
                row.case_number = case.case_number
                row.payload     = payload
            written += 1
    logger.info("Seeded %d case(s)", written)
    return written


def load_case_files(directory: str) -> List[Case]:
    """
    Read every ``*.json`` file in ``directory`` as a Case.

    Raises:
        ValidationError: A file is not valid JSON or not a valid Case. The
                         message names the file so authors can fix it.
    """
    cases: List[Case] = []
    for path in sorted(Path(directory).glob("*.json")):
        try:
            cases.append(Case.model_validate(json.loads(path.read_text(encoding="utf-8"))))
        except (json.JSONDecodeError, SchemaValidationError) as exc:
            raise ValidationError(f"invalid case file {path.name}: {exc}") from exc
        logger.debug("Loaded case file %s", path.name)
    return cases
