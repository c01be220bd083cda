"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from college_portal.api.v1.endpoints import exam_marks, grade_cards

api_router = APIRouter()

# Exam marks (college-scoped)
api_router.include_router(
    exam_marks.router,
    prefix="/examMarks",
    tags=["Exam Marks"],
)

# Grade cards (college-scoped)
api_router.include_router(
    grade_cards.router,
    prefix="/gradeCard",
    tags=["Grade Cards"],
)
