"""Exam marks endpoints."""

import asyncio
from io import BytesIO

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from college_portal.api.v1.endpoints.uploads import read_spreadsheet_upload
from college_portal.core.database import DbSession
from college_portal.core.dependencies import CollegeAdmin, MarksEditor
from college_portal.core.exceptions import UploadError
from college_portal.schemas.exam_mark import ExamMarkBulkDelete, ExamMarkBulkDeleteResult
from college_portal.services.exam_mark import ExamMarkService
from college_portal.services.exam_mark_import import ExamMarkImportService
from college_portal.services.spreadsheet import EXAM_MARK_COLUMNS, XLSX_MEDIA_TYPE, build_template

router = APIRouter()


@router.post("/excelImport")
def import_exam_marks(
    user: MarksEditor,
    db: DbSession,
    file: UploadFile | None = File(None),
    exam_type_id: int | None = Form(None, alias="examTypeId"),
    batch_subject_id: int | None = Form(None, alias="batchSubjectId"),
):
    """
    Import exam marks from an Excel sheet.

    ALL-OR-NOTHING VALIDATION:
    - Any missing student, unassigned student, existing mark or marks above
      the exam type's total rejects the whole sheet (400)
    - Rows that fail to save after validation are reported (207)
    - Requires COLLEGE_SUPER_ADMIN or TEACHER

    Expected columns: B student name, C enrollment no, D achieved marks,
    E absent, F debarred, G malpractice (Yes/No)
    """
    if file is None or exam_type_id is None or batch_subject_id is None:
        raise UploadError("Missing required fields: file, examTypeId and batchSubjectId are required")

    content = read_spreadsheet_upload(file)

    service = ExamMarkImportService(db)
    # Runs in the threadpool; the sync session must stay off the event loop
    outcome = asyncio.run(service.import_marks(
        college_id=user.college_id,
        exam_type_id=exam_type_id,
        batch_subject_id=batch_subject_id,
        file_content=content,
    ))

    return JSONResponse(
        status_code=outcome.status.http_status,
        content=outcome.body.to_response(),
    )


@router.get("/excelImport/template")
def download_exam_marks_template(user: MarksEditor):
    """Download the exam marks import template."""
    content = build_template(EXAM_MARK_COLUMNS, "Exam Marks")

    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=exam_marks_template.xlsx"},
    )


@router.delete("/bulk", response_model=ExamMarkBulkDeleteResult, response_model_by_alias=True)
def bulk_delete_exam_marks(
    request: ExamMarkBulkDelete,
    user: CollegeAdmin,
    db: DbSession,
):
    """
    Delete exam marks in bulk.

    IDs that do not belong to the caller's college are reported as failures.
    """
    service = ExamMarkService(db)
    return asyncio.run(service.bulk_delete_marks(user.college_id, request.ids))
