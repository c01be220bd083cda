"""Shared checks for spreadsheet upload endpoints."""

from fastapi import UploadFile

from college_portal.core.config import settings
from college_portal.core.exceptions import UploadError


def read_spreadsheet_upload(file: UploadFile | None) -> bytes:
    """Validate an uploaded workbook and return its bytes."""
    if file is None or not file.filename:
        raise UploadError("No file provided")

    if not any(file.filename.lower().endswith(ext) for ext in settings.ALLOWED_EXTENSIONS):
        raise UploadError("Only .xlsx files are allowed")

    content = file.file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise UploadError(f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit")

    return content
