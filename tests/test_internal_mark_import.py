import re
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from college_portal.models import Student, StudentBatch, StudentGradeCard, SubjectGradeDetail
from college_portal.schemas.common import ImportStatus
from college_portal.services.internal_mark_import import InternalMarkImportService

CARD_PATTERN = re.compile(r"^GC\d{2}\d{2}\d\d{3}$")
INTERNAL_HEADER = ["S.No", "Student Name", "Enrollment No", "Internal Marks"]


def count(db_session, model) -> int:
    return db_session.execute(select(func.count()).select_from(model)).scalar()


def internal_rows(students, marks=24):
    return [[n, s.name, s.enrollment_no, marks] for n, s in enumerate(students, start=1)]


class TestInternalMarkImport:
    """Internal marks import into grade cards."""

    def test_creates_grade_cards_and_details(
        self, db_session, college, theory_subject, students, make_workbook
    ):
        content = make_workbook(internal_rows(students[:3]), header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session).import_marks(college.id, theory_subject.id, content)

        assert outcome.status == ImportStatus.SUCCESS
        body = outcome.body.to_response()
        assert body["successCount"] == 3
        assert body["cardNumbers"] == ["GC21053001", "GC21053002", "GC21053003"]
        assert count(db_session, StudentGradeCard) == 3

        details = db_session.execute(select(SubjectGradeDetail)).scalars().all()
        assert len(details) == 3
        assert all(d.credit == 4 for d in details)
        assert all(d.internal_marks == Decimal("24") for d in details)

    def test_one_unknown_student_blocks_everything(
        self, db_session, college, theory_subject, students, make_workbook
    ):
        rows = internal_rows(students[:10]) + [[11, "Ghost", "E21CE05777", 20]]
        content = make_workbook(rows, header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session).import_marks(college.id, theory_subject.id, content)

        assert outcome.status == ImportStatus.REJECTED
        body = outcome.body.to_response()
        assert body["missingStudents"] == [
            {"row": 12, "enrollmentNo": "E21CE05777", "error": "Student not found"}
        ]
        assert count(db_session, StudentGradeCard) == 0
        assert count(db_session, SubjectGradeDetail) == 0

    def test_marks_above_thirty_are_schema_errors(
        self, db_session, college, theory_subject, students, make_workbook
    ):
        rows = internal_rows(students[:2])
        rows[0][3] = 31
        content = make_workbook(rows, header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session).import_marks(college.id, theory_subject.id, content)

        assert outcome.status == ImportStatus.REJECTED
        assert outcome.body.errors[0].row == 2
        assert outcome.body.errors[0].error.startswith("Internal marks")
        assert count(db_session, SubjectGradeDetail) == 0

    def test_empty_enrollment_goes_to_missing_students(
        self, db_session, college, theory_subject, students, make_workbook
    ):
        content = make_workbook([[1, "No Number", None, 20]], header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session).import_marks(college.id, theory_subject.id, content)

        assert outcome.status == ImportStatus.REJECTED
        assert outcome.body.missing_students[0].row == 2
        assert outcome.body.missing_students[0].error == "Enrollment number is required"

    def test_second_subject_reuses_grade_cards(
        self, db_session, college, theory_subject, practical_subject, students, make_workbook
    ):
        content = make_workbook(internal_rows(students[:3]), header=INTERNAL_HEADER)
        service = InternalMarkImportService(db_session)

        service.import_marks(college.id, theory_subject.id, content)
        outcome = service.import_marks(college.id, practical_subject.id, content)

        assert outcome.status == ImportStatus.SUCCESS
        assert outcome.body.card_numbers == []
        assert count(db_session, StudentGradeCard) == 3
        assert count(db_session, SubjectGradeDetail) == 6

    def test_existing_records_and_unassigned_students(
        self, db_session, college, theory_subject, students, unassigned_student, make_workbook
    ):
        service = InternalMarkImportService(db_session)
        service.import_marks(
            college.id, theory_subject.id, make_workbook(internal_rows(students[:1]), header=INTERNAL_HEADER)
        )

        rows = internal_rows([students[0], unassigned_student, students[1]])
        outcome = service.import_marks(college.id, theory_subject.id, make_workbook(rows, header=INTERNAL_HEADER))

        assert outcome.status == ImportStatus.REJECTED
        assert [r.row for r in outcome.body.existing_records] == [2]
        assert [r.row for r in outcome.body.not_assigned_students] == [3]
        assert count(db_session, SubjectGradeDetail) == 1

    @pytest.mark.parametrize("chunk_size", [1, 3, 50])
    def test_results_do_not_depend_on_chunk_size(
        self, chunk_size, db_session, college, theory_subject, students, make_workbook
    ):
        content = make_workbook(internal_rows(students), header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session, chunk_size=chunk_size).import_marks(
            college.id, theory_subject.id, content
        )

        assert outcome.status == ImportStatus.SUCCESS
        assert outcome.body.success_count == 12
        assert outcome.body.card_numbers == [f"GC21053{n:03d}" for n in range(1, 13)]
        assert all(CARD_PATTERN.match(n) for n in outcome.body.card_numbers)

    def test_failed_chunk_is_rolled_back_alone(
        self, db_session, college, theory_subject, students, make_workbook, monkeypatch
    ):
        """Chunks before and after a failing chunk stay committed."""
        service = InternalMarkImportService(db_session, chunk_size=2)
        original = service._get_or_create_grade_card

        def fail_for_third_student(mark, *args, **kwargs):
            if mark.student_id == students[2].id:
                raise IntegrityError("INSERT", {}, Exception("simulated conflict"))
            return original(mark, *args, **kwargs)

        monkeypatch.setattr(service, "_get_or_create_grade_card", fail_for_third_student)
        content = make_workbook(internal_rows(students[:6]), header=INTERNAL_HEADER)

        outcome = service.import_marks(college.id, theory_subject.id, content)

        assert outcome.status == ImportStatus.PARTIAL
        assert outcome.body.success_count == 4
        assert len(outcome.body.errors) == 1
        assert outcome.body.errors[0].chunk == 2
        assert outcome.body.errors[0].affected_records == 2
        assert count(db_session, SubjectGradeDetail) == 4
        assert count(db_session, StudentGradeCard) == 4

    def test_short_enrollment_number_blocks_everything(
        self, db_session, college, batch, theory_subject, students, make_workbook
    ):
        short = Student(college_id=college.id, name="Short Number", enrollment_no="E21")
        db_session.add(short)
        db_session.flush()
        db_session.add(StudentBatch(student_id=short.id, batch_id=batch.id))
        db_session.commit()

        rows = internal_rows(students[:4]) + [[5, short.name, "E21", 20]]
        content = make_workbook(rows, header=INTERNAL_HEADER)

        outcome = InternalMarkImportService(db_session, chunk_size=2).import_marks(
            college.id, theory_subject.id, content
        )

        assert outcome.status == ImportStatus.REJECTED
        assert len(outcome.body.errors) == 1
        assert outcome.body.errors[0].row == 6
        assert outcome.body.errors[0].enrollment_no == "E21"
        assert "too short" in outcome.body.errors[0].error
        assert count(db_session, StudentGradeCard) == 0
        assert count(db_session, SubjectGradeDetail) == 0
