"""Database models package."""

from college_portal.models.batch import Batch, BatchSubject, ClassType, Semester, Subject
from college_portal.models.college import College
from college_portal.models.exam import ExamMark, ExamType
from college_portal.models.grade_card import StudentGradeCard, SubjectGradeDetail
from college_portal.models.student import Student, StudentBatch

__all__ = [
    # College
    "College",
    # Academic structure
    "Semester",
    "Batch",
    "Subject",
    "BatchSubject",
    "ClassType",
    # Student
    "Student",
    "StudentBatch",
    # Exam
    "ExamType",
    "ExamMark",
    # Grade card
    "StudentGradeCard",
    "SubjectGradeDetail",
]
