from io import BytesIO

import pytest
from openpyxl import load_workbook

from college_portal.core.exceptions import UploadError
from college_portal.services.spreadsheet import (
    EXAM_MARK_COLUMNS,
    INTERNAL_MARK_COLUMNS,
    build_template,
    cell_flag,
    cell_text,
    read_sheet_rows,
)


class TestReadSheetRows:

    def test_decodes_by_column_letter(self, make_workbook):
        content = make_workbook([
            [1, "Asha", "E21CE05001", 42, "Yes", "No", None],
            [2, "Ravi", "E21CE05002", 38.5, None, None, "Yes"],
        ])

        rows = read_sheet_rows(content, EXAM_MARK_COLUMNS)

        assert [r.row_number for r in rows] == [2, 3]
        assert rows[0].values == {
            "student_name": "Asha",
            "enrollment_no": "E21CE05001",
            "achieved_marks": 42,
            "was_absent": "Yes",
            "debarred": "No",
            "malpractice": None,
        }
        assert rows[1].values["achieved_marks"] == 38.5

    def test_blank_rows_are_skipped_not_renumbered(self, make_workbook):
        content = make_workbook([
            [1, "Asha", "E21CE05001", 42],
            [None, None, None, None],
            [3, "Ravi", "E21CE05002", 30],
        ])

        rows = read_sheet_rows(content, EXAM_MARK_COLUMNS)

        assert [r.row_number for r in rows] == [2, 4]

    def test_serial_number_only_row_is_blank(self, make_workbook):
        """Column A is not mapped, so a row holding only a serial number is empty."""
        content = make_workbook([[1, None, None, None]])

        assert read_sheet_rows(content, INTERNAL_MARK_COLUMNS) == []

    def test_header_only_sheet(self, make_workbook):
        assert read_sheet_rows(make_workbook([]), EXAM_MARK_COLUMNS) == []

    def test_unreadable_file_raises_upload_error(self):
        with pytest.raises(UploadError) as exc_info:
            read_sheet_rows(b"not a workbook", EXAM_MARK_COLUMNS)

        assert exc_info.value.status_code == 400
        assert "Failed to parse Excel file" in exc_info.value.message


class TestCellCoercion:

    @pytest.mark.parametrize(
        "value,expected",
        [("Yes", True), (" Yes ", True), ("yes", False), ("No", False), (None, False), (1, False)],
    )
    def test_flag_is_exact_yes(self, value, expected):
        assert cell_flag(value) is expected

    def test_text_trims_and_drops_float_suffix(self):
        assert cell_text("  E21CE05001 ") == "E21CE05001"
        assert cell_text(2105001.0) == "2105001"
        assert cell_text(None) == ""


class TestBuildTemplate:

    def test_headers_follow_column_table(self):
        content = build_template(EXAM_MARK_COLUMNS, "Exam Marks")

        ws = load_workbook(BytesIO(content)).active
        assert ws.title == "Exam Marks"
        assert ws["A1"].value == "S.No"
        for col in EXAM_MARK_COLUMNS:
            assert ws[f"{col.letter}1"].value == col.header

    def test_template_round_trips_through_reader(self):
        content = build_template(INTERNAL_MARK_COLUMNS, "Internal Marks")

        rows = read_sheet_rows(content, INTERNAL_MARK_COLUMNS)

        assert len(rows) == 1
        assert rows[0].values["enrollment_no"] == "E21CE05001"
        assert rows[0].values["internal_marks"] == 24
