"""Exam mark maintenance operations."""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from college_portal.models.batch import Batch, BatchSubject
from college_portal.models.exam import ExamMark
from college_portal.schemas.exam_mark import ExamMarkBulkDeleteResult
from college_portal.services.bulk_operation import bulk_delete

logger = logging.getLogger(__name__)


class ExamMarkService:
    """Exam mark service."""

    def __init__(self, db: Session):
        self.db = db

    def _get_college_mark(self, college_id: int, mark_id: int) -> ExamMark | None:
        result = self.db.execute(
            select(ExamMark)
            .join(BatchSubject, BatchSubject.id == ExamMark.batch_subject_id)
            .join(Batch, Batch.id == BatchSubject.batch_id)
            .where(
                ExamMark.id == mark_id,
                Batch.college_id == college_id,
            )
        )
        return result.scalar_one_or_none()

    async def bulk_delete_marks(self, college_id: int, mark_ids: list[int]) -> ExamMarkBulkDeleteResult:
        """Delete exam marks of a college; unknown IDs are reported per item."""

        async def delete_mark(mark_id: int) -> bool:
            mark = self._get_college_mark(college_id, mark_id)
            if not mark:
                return False
            with self.db.begin_nested():
                self.db.delete(mark)
                self.db.flush()
            return True

        result = await bulk_delete(mark_ids, delete_mark)
        self.db.commit()

        logger.info(f"[EXAM MARK] Bulk delete: {result.processed} deleted, {result.failed} failed")
        return ExamMarkBulkDeleteResult(
            message=f"Deleted {result.processed} exam marks.",
            deleted=result.processed,
            failed=result.failed,
            errors=[
                {"id": mark_ids[int(d.id)], "error": d.error}
                for d in result.details
            ],
        )
