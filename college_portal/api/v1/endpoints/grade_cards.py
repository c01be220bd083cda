"""Grade card endpoints."""

import asyncio
from io import BytesIO

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from college_portal.api.v1.endpoints.uploads import read_spreadsheet_upload
from college_portal.core.database import DbSession
from college_portal.core.dependencies import CollegeAdmin
from college_portal.core.exceptions import UploadError
from college_portal.schemas.grade_card import (
    BatchRequest,
    GradeCalculationRejection,
    GradeCardResponse,
)
from college_portal.services.grade_card import GradeCardService
from college_portal.services.internal_mark_import import InternalMarkImportService
from college_portal.services.spreadsheet import INTERNAL_MARK_COLUMNS, XLSX_MEDIA_TYPE, build_template

router = APIRouter()


def _calculation_response(result) -> JSONResponse:
    if isinstance(result, GradeCalculationRejection):
        return JSONResponse(status_code=400, content=result.to_response())
    status_code = 207 if result.failed else 200
    return JSONResponse(status_code=status_code, content=result.to_response())


@router.post("/importInternal")
def import_internal_marks(
    user: CollegeAdmin,
    db: DbSession,
    file: UploadFile | None = File(None),
    batch_subject_id: int | None = Form(None, alias="batchSubjectId"),
):
    """
    Import internal marks into student grade cards.

    ALL-OR-NOTHING VALIDATION:
    - Any missing, unassigned or already graded student rejects the sheet (400)
    - Grade cards are created on first use with a generated card number
    - Rows are committed in chunks; a failed chunk is reported (207)
    - Requires COLLEGE_SUPER_ADMIN

    Expected columns: C enrollment no, D internal marks (0-30)
    """
    if file is None or batch_subject_id is None:
        raise UploadError("Missing required fields: file and batchSubjectId are required")

    content = read_spreadsheet_upload(file)

    service = InternalMarkImportService(db)
    outcome = service.import_marks(
        college_id=user.college_id,
        batch_subject_id=batch_subject_id,
        file_content=content,
    )

    return JSONResponse(
        status_code=outcome.status.http_status,
        content=outcome.body.to_response(),
    )


@router.get("/importInternal/template")
def download_internal_marks_template(user: CollegeAdmin):
    """Download the internal marks import template."""
    content = build_template(INTERNAL_MARK_COLUMNS, "Internal Marks")

    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=internal_marks_template.xlsx"},
    )


@router.post("/calculateExternal")
def calculate_external_marks(
    request: BatchRequest,
    user: CollegeAdmin,
    db: DbSession,
):
    """
    Calculate external marks for every subject of a batch.

    Uses the college's latest semester exam. Nothing is updated unless every
    student has exam marks, a grade card and internal marks.
    """
    service = GradeCardService(db)
    result = asyncio.run(service.calculate_external_marks(user.college_id, request.batch_id))
    return _calculation_response(result)


@router.post("/generateGradeDetails")
def generate_grade_details(
    request: BatchRequest,
    user: CollegeAdmin,
    db: DbSession,
):
    """Assign grades, grade points, GPA and CGPA for a batch."""
    service = GradeCardService(db)
    result = service.generate_grade_details(user.college_id, request.batch_id)
    return _calculation_response(result)


@router.get("/{grade_card_id}", response_model=GradeCardResponse, response_model_by_alias=True)
def get_grade_card(
    grade_card_id: int,
    user: CollegeAdmin,
    db: DbSession,
):
    """Get a grade card with its subject lines."""
    service = GradeCardService(db)
    return service.get_grade_card(user.college_id, grade_card_id)
