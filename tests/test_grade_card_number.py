import re

import pytest

from college_portal.core.exceptions import GradeCardNumberError
from college_portal.models import StudentGradeCard
from college_portal.services.grade_card_number import (
    CardNumberReservations,
    card_number_prefix,
    format_card_number,
    generate_card_number,
    next_free_card_number,
)

CARD_PATTERN = re.compile(r"^GC\d{2}\d{2}\d\d{3}$")


class TestCardNumberFormat:

    def test_tokens_come_from_enrollment_number(self):
        assert card_number_prefix("E21CE05001", 3) == "GC21053"
        assert format_card_number("E21CE05001", 3, 4) == "GC21053004"

    def test_short_enrollment_number_is_rejected(self):
        with pytest.raises(GradeCardNumberError):
            card_number_prefix("E21CE0", 3)
        with pytest.raises(GradeCardNumberError):
            card_number_prefix(None, 3)

    def test_probe_skips_taken_and_reserved(self):
        reservations = CardNumberReservations()
        reservations.reserve("GC21053002")

        assert next_free_card_number("GC21053", {"GC21053001"}, reservations) == "GC21053003"

    def test_exhausted_counter_raises(self):
        taken = {f"GC21053{n:03d}" for n in range(1, 1000)}

        with pytest.raises(GradeCardNumberError):
            next_free_card_number("GC21053", taken, CardNumberReservations())


class TestGenerateCardNumber:

    def test_numbers_are_unique_within_a_request(self, db_session, batch, semester, students):
        reservations = CardNumberReservations()

        numbers = [
            generate_card_number(db_session, batch.id, semester, s.enrollment_no, reservations)
            for s in students
        ]

        assert len(set(numbers)) == len(students)
        assert all(CARD_PATTERN.match(n) for n in numbers)
        assert numbers[0] == "GC21053001"
        assert numbers[-1] == "GC21053012"
        assert len(reservations) == len(students)

    def test_persisted_numbers_are_skipped(self, db_session, batch, semester, students):
        db_session.add(StudentGradeCard(
            student_id=students[0].id,
            batch_id=batch.id,
            semester_id=semester.id,
            card_no="GC21053001",
        ))
        db_session.commit()

        card_no = generate_card_number(
            db_session, batch.id, semester, students[1].enrollment_no, CardNumberReservations()
        )

        assert card_no == "GC21053002"

    def test_released_number_is_reused(self, db_session, batch, semester, students):
        reservations = CardNumberReservations()
        first = generate_card_number(db_session, batch.id, semester, students[0].enrollment_no, reservations)
        reservations.release(first)

        again = generate_card_number(db_session, batch.id, semester, students[0].enrollment_no, reservations)

        assert again == first
