"""Positional spreadsheet decoding driven by column mapping tables.

Import sheets are read by column letter rather than header text. Each import
type declares its layout as a tuple of ``SheetColumn`` entries; changing a
layout is a change to that table only.
"""

import logging
from io import BytesIO
from typing import Any, NamedTuple

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import column_index_from_string
from pydantic import ValidationError as PydanticValidationError

from college_portal.core.exceptions import UploadError

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class SheetColumn(NamedTuple):
    """Maps one spreadsheet column to a row field."""

    field: str
    letter: str
    header: str
    sample: Any = None
    width: int = 15


class SheetRow(NamedTuple):
    """A non-empty data row: its 1-based sheet row number and raw cell values."""

    row_number: int
    values: dict[str, Any]


# Column A holds a serial number in the portal's exports and is ignored
EXAM_MARK_COLUMNS: tuple[SheetColumn, ...] = (
    SheetColumn("student_name", "B", "Student Name", "John Doe", 25),
    SheetColumn("enrollment_no", "C", "Enrollment No", "E21CE05001", 18),
    SheetColumn("achieved_marks", "D", "Achieved Marks", 42, 15),
    SheetColumn("was_absent", "E", "Absent (Yes/No)", "No", 15),
    SheetColumn("debarred", "F", "Debarred (Yes/No)", "No", 17),
    SheetColumn("malpractice", "G", "Malpractice (Yes/No)", "No", 20),
)

INTERNAL_MARK_COLUMNS: tuple[SheetColumn, ...] = (
    SheetColumn("student_name", "B", "Student Name", "John Doe", 25),
    SheetColumn("enrollment_no", "C", "Enrollment No", "E21CE05001", 18),
    SheetColumn("internal_marks", "D", "Internal Marks", 24, 15),
)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def read_sheet_rows(
    file_content: bytes,
    columns: tuple[SheetColumn, ...],
) -> list[SheetRow]:
    """Read the first worksheet and decode every data row by column letter.

    Row 1 is the header and is skipped. Rows whose mapped cells are all blank
    are skipped without being reported.
    """
    try:
        workbook = load_workbook(filename=BytesIO(file_content), read_only=True, data_only=True)
    except Exception as e:
        raise UploadError(f"Failed to parse Excel file: {str(e)}")

    try:
        if not workbook.worksheets:
            raise UploadError("Excel file has no worksheets")
        sheet = workbook.worksheets[0]

        positions = [(col.field, column_index_from_string(col.letter) - 1) for col in columns]

        rows: list[SheetRow] = []
        skipped_empty_rows = 0
        for row_number, raw in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
            values = {
                field: raw[index] if index < len(raw) else None
                for field, index in positions
            }
            if all(_is_blank(v) for v in values.values()):
                skipped_empty_rows += 1
                continue
            rows.append(SheetRow(row_number, values))

        logger.info(
            f"[EXCEL PARSE] {len(rows)} data rows extracted, {skipped_empty_rows} empty rows skipped"
        )
        return rows
    finally:
        workbook.close()


def cell_text(value: Any) -> str:
    """Cell value as trimmed text; blank cells become an empty string."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def cell_flag(value: Any) -> bool:
    """Yes/No cell: only an exact "Yes" counts as true."""
    return cell_text(value) == "Yes"


def build_template(columns: tuple[SheetColumn, ...], title: str) -> bytes:
    """Generate an .xlsx import template laid out from a column table."""
    wb = Workbook()
    ws = wb.active
    ws.title = title

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin"),
    )

    serial = ws.cell(row=1, column=1, value="S.No")
    serial.font = header_font
    serial.fill = header_fill
    serial.border = thin_border
    ws.cell(row=2, column=1, value=1).border = thin_border

    for col in columns:
        col_idx = column_index_from_string(col.letter)
        cell = ws.cell(row=1, column=col_idx, value=col.header)
        cell.font = header_font
        cell.fill = header_fill
        cell.border = thin_border
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.cell(row=2, column=col_idx, value=col.sample).border = thin_border
        ws.column_dimensions[col.letter].width = col.width

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


FIELD_LABELS = {
    "enrollment_no": "Enrollment number",
    "enrollmentNo": "Enrollment number",
    "achieved_marks": "Achieved marks",
    "achievedMarks": "Achieved marks",
    "internal_marks": "Internal marks",
    "internalMarks": "Internal marks",
}


def describe_row_errors(exc: PydanticValidationError) -> str:
    """Flatten a row schema failure into one readable sentence."""
    messages = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "row"
        label = FIELD_LABELS.get(field, field)
        messages.append(f"{label}: {error['msg']}")
    return ", ".join(messages)
