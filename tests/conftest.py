import os

# Must be set before the application settings are first imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BULK_RETRY_DELAY_SECONDS"] = "0"

from decimal import Decimal
from io import BytesIO
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy.orm import Session

from college_portal.core.database import Base, SessionLocal, engine, get_db
from college_portal.core.dependencies import COLLEGE_SUPER_ADMIN
from college_portal.core.security import create_access_token
from college_portal.models import (
    Batch,
    BatchSubject,
    ClassType,
    College,
    ExamType,
    Semester,
    Student,
    StudentBatch,
    Subject,
)

ENROLLMENT_PREFIX = "E21CE05"


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def college(db_session: Session) -> College:
    college = College(name="Government Engineering College", code="GEC")
    db_session.add(college)
    db_session.commit()
    return college


@pytest.fixture
def other_college(db_session: Session) -> College:
    college = College(name="City Polytechnic", code="CPT")
    db_session.add(college)
    db_session.commit()
    return college


@pytest.fixture
def semester(db_session: Session) -> Semester:
    semester = Semester(name="Semester 3", numerical=3)
    db_session.add(semester)
    db_session.commit()
    return semester


@pytest.fixture
def batch(db_session: Session, college: College, semester: Semester) -> Batch:
    batch = Batch(college_id=college.id, name="CE 2021 - Sem 3", semester_id=semester.id)
    db_session.add(batch)
    db_session.commit()
    return batch


@pytest.fixture
def theory_subject(db_session: Session, college: College, batch: Batch) -> BatchSubject:
    subject = Subject(college_id=college.id, name="Data Structures", code="CE301")
    db_session.add(subject)
    db_session.flush()
    batch_subject = BatchSubject(
        batch_id=batch.id,
        subject_id=subject.id,
        credit_score=4,
        class_type=ClassType.THEORY,
    )
    db_session.add(batch_subject)
    db_session.commit()
    return batch_subject


@pytest.fixture
def practical_subject(db_session: Session, college: College, batch: Batch) -> BatchSubject:
    subject = Subject(college_id=college.id, name="Data Structures Lab", code="CE302")
    db_session.add(subject)
    db_session.flush()
    batch_subject = BatchSubject(
        batch_id=batch.id,
        subject_id=subject.id,
        credit_score=2,
        class_type=ClassType.PRACTICAL,
    )
    db_session.add(batch_subject)
    db_session.commit()
    return batch_subject


def enrollment_no(n: int) -> str:
    return f"{ENROLLMENT_PREFIX}{n:03d}"


@pytest.fixture
def students(db_session: Session, college: College, batch: Batch) -> list[Student]:
    """Twelve students assigned to the batch, E21CE05001..E21CE05012."""
    created = []
    for n in range(1, 13):
        student = Student(college_id=college.id, name=f"Student {n}", enrollment_no=enrollment_no(n))
        db_session.add(student)
        db_session.flush()
        db_session.add(StudentBatch(student_id=student.id, batch_id=batch.id))
        created.append(student)
    db_session.commit()
    return created


@pytest.fixture
def unassigned_student(db_session: Session, college: College) -> Student:
    student = Student(college_id=college.id, name="Transfer Student", enrollment_no=enrollment_no(99))
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture
def mid_term(db_session: Session, college: College) -> ExamType:
    exam_type = ExamType(
        college_id=college.id,
        exam_name="Mid Term",
        total_marks=Decimal("50"),
        passing_marks=Decimal("18"),
    )
    db_session.add(exam_type)
    db_session.commit()
    return exam_type


@pytest.fixture
def semester_exam(db_session: Session, college: College) -> ExamType:
    exam_type = ExamType(
        college_id=college.id,
        exam_name="Semester End Exam",
        total_marks=Decimal("100"),
        passing_marks=Decimal("35"),
    )
    db_session.add(exam_type)
    db_session.commit()
    return exam_type


@pytest.fixture
def make_workbook():
    """Build an .xlsx upload: a header row followed by the given rows (column A first)."""

    def _make(rows: list[list], header: list | None = None) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.append(header or ["S.No", "Student Name", "Enrollment No", "Marks", "Absent", "Debarred", "Malpractice"])
        for row in rows:
            ws.append(row)
        output = BytesIO()
        wb.save(output)
        return output.getvalue()

    return _make


@pytest.fixture
def auth_headers(college: College):
    """Bearer headers for a role in the test college."""

    def _headers(role: str = COLLEGE_SUPER_ADMIN, college_id: int | None = -1) -> dict[str, str]:
        token = create_access_token(
            user_id=1,
            college_id=college.id if college_id == -1 else college_id,
            role=role,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Test client sharing the test session."""
    from college_portal.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    # No lifespan: shutdown would dispose the shared in-memory engine
    yield TestClient(app)
    app.dependency_overrides.clear()
