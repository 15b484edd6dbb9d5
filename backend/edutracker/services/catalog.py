"""
Competency catalog - BNCC skill lookup for display.

Nothing in the progress engine depends on catalog contents; evaluations
reference competencies by id only.

BNCC codes follow the framework's structure, e.g. EF01LP01 or EF15LP03:
- stage: EI (early childhood), EF (elementary), EM (high school)
- two digits: EF/EM school-year span. "0N" is year N alone; "AB" with
  A < B spans years A through B (EF15 = 1st to 5th, EF69 = 6th to 9th).
  For EI the digits name the age group instead.
- component: two letters (LP, MA, CI, ...) or three for EM areas (LGG, MAT, ...)
- sequence number
"""

import re
from typing import List, NamedTuple, Optional

from edutracker.errors import ValidationError, NotFoundError
from edutracker.schemas import CompetencyRecord
from edutracker.store import RecordStore, COMPETENCIES
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("db")

BNCC_CODE_PATTERN = re.compile(r"^(EI|EF|EM)(\d)(\d)([A-Z]{2,3})(\d{2,3})$")

DISCHARGE_COMPETENCY = CompetencyRecord(
    id="discharge",
    name="Avaliação de alta do reforço",
    subject="",
    description="Final evaluation recorded when a student leaves a reinforcement group.",
)


class BnccCode(NamedTuple):
    stage: str
    first_year: Optional[int]
    last_year: Optional[int]
    component: str
    sequence: int

    def covers_year(self, year: int) -> bool:
        if self.first_year is None:
            return True
        return self.first_year <= year <= self.last_year


def parse_bncc_code(code: str) -> BnccCode:
    match = BNCC_CODE_PATTERN.match((code or "").strip().upper())
    if not match:
        raise ValidationError("'{}' is not a BNCC code".format(code))
    stage, first, second, component, sequence = match.groups()
    first, second = int(first), int(second)

    if stage == "EI":
        return BnccCode(stage, None, None, component, int(sequence))
    if first == 0:
        if second == 0:
            raise ValidationError("'{}' names no school year".format(code))
        first_year, last_year = second, second
    elif first < second:
        first_year, last_year = first, second
    else:
        raise ValidationError("'{}' has an invalid year span".format(code))

    max_year = 9 if stage == "EF" else 3
    if last_year > max_year:
        raise ValidationError("'{}' exceeds the {} years of {}".format(code, max_year, stage))
    return BnccCode(stage, first_year, last_year, component, int(sequence))


def grade_year(grade: str) -> Optional[int]:
    """School year from a grade label such as '1º' or '2º ano'."""
    match = re.match(r"\s*(\d+)", grade or "")
    return int(match.group(1)) if match else None


class CompetencyCatalog:
    """Read access to competencies, plus validated saves used by seeding and imports."""

    def __init__(self, store: RecordStore):
        self.store = store

    def describe(self, competency_id: str) -> CompetencyRecord:
        if competency_id == DISCHARGE_COMPETENCY.id:
            return DISCHARGE_COMPETENCY
        record = self.store.get(COMPETENCIES, competency_id)
        if record is None:
            raise NotFoundError(COMPETENCIES, competency_id)
        return CompetencyRecord.model_validate(record)

    def list_competencies(self, subject: str = None) -> List[CompetencyRecord]:
        where = {"subject": subject} if subject else {}
        competencies = [CompetencyRecord.model_validate(r) for r in self.store.list(COMPETENCIES, **where)]
        return sorted(competencies, key=lambda c: (c.subject, c.code or "", c.name))

    def save(self, competency: CompetencyRecord) -> CompetencyRecord:
        """Store a competency after checking its code against its grade."""
        if competency.code:
            parsed = parse_bncc_code(competency.code)
            year = grade_year(competency.grade)
            if parsed.stage == "EF" and year is not None and not parsed.covers_year(year):
                raise ValidationError("Code {} covers years {}-{}, not grade {}".format(
                    competency.code, parsed.first_year, parsed.last_year, competency.grade))
            competency.code = competency.code.strip().upper()
        self.store.put(COMPETENCIES, competency.to_record())
        log_with_context(logger, "DEBUG", "Saved competency {}".format(competency.code or competency.id),
                         context={"competency_id": competency.id})
        return competency
