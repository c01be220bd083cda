"""Human-readable grade card numbers.

A card number is ``GC`` + admission year (enrollment chars 1-2) + branch code
(enrollment chars 5-6) + semester numeral + a zero-padded 3-digit counter,
e.g. ``GC21053004``. The counter is the lowest value not already used by a
persisted card of the same batch and semester nor reserved earlier in the
same request.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from college_portal.core.exceptions import GradeCardNumberError
from college_portal.models.batch import Semester
from college_portal.models.grade_card import StudentGradeCard

logger = logging.getLogger(__name__)

CARD_PREFIX = "GC"
MAX_COUNTER = 999


class CardNumberReservations:
    """Card numbers handed out during one import request.

    Passed into every chunk commit so that rows of later chunks never reuse
    a number generated for an earlier row before it is persisted.
    """

    def __init__(self) -> None:
        self._numbers: set[str] = set()

    def reserve(self, card_no: str) -> None:
        self._numbers.add(card_no)

    def release(self, card_no: str) -> None:
        self._numbers.discard(card_no)

    def __contains__(self, card_no: object) -> bool:
        return card_no in self._numbers

    def __len__(self) -> int:
        return len(self._numbers)

    def __iter__(self):
        return iter(sorted(self._numbers))


def card_number_prefix(enrollment_no: str | None, semester_numeral: int) -> str:
    """Everything in a card number except the counter."""
    if not enrollment_no or len(enrollment_no) < 7:
        raise GradeCardNumberError(
            f"Enrollment number '{enrollment_no or ''}' is too short to derive a grade card number"
        )
    year = enrollment_no[1:3]
    branch_code = enrollment_no[5:7]
    return f"{CARD_PREFIX}{year}{branch_code}{semester_numeral}"


def format_card_number(enrollment_no: str, semester_numeral: int, counter: int) -> str:
    return f"{card_number_prefix(enrollment_no, semester_numeral)}{counter:03d}"


def next_free_card_number(
    prefix: str,
    taken: set[str],
    reservations: CardNumberReservations,
) -> str:
    """Probe counters 1..999 and return the first unused number."""
    for counter in range(1, MAX_COUNTER + 1):
        candidate = f"{prefix}{counter:03d}"
        if candidate not in taken and candidate not in reservations:
            return candidate
    raise GradeCardNumberError(f"All {MAX_COUNTER} grade card numbers for '{prefix}' are in use")


def generate_card_number(
    db: Session,
    batch_id: int,
    semester: Semester,
    enrollment_no: str | None,
    reservations: CardNumberReservations,
) -> str:
    """Generate and reserve a unique card number for a batch and semester.

    Persisted numbers are read on every call so that a retry after a
    unique-constraint conflict sees numbers committed by other requests.
    """
    prefix = card_number_prefix(enrollment_no, semester.numerical)

    result = db.execute(
        select(StudentGradeCard.card_no).where(
            StudentGradeCard.batch_id == batch_id,
            StudentGradeCard.semester_id == semester.id,
        )
    )
    taken = set(result.scalars().all())

    card_no = next_free_card_number(prefix, taken, reservations)
    reservations.reserve(card_no)
    logger.debug(f"[GRADE CARD NO] Reserved {card_no} for enrollment {enrollment_no}")
    return card_no
