from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

from mecollect.config.loader import ExportSettings
from mecollect.excel.format import FIRST_DATA_ROW, HEADER_ROW
from mecollect.excel.reader import (
    ContextMismatchError,
    NotProducedBySystemError,
    WorkbookFormatError,
    import_workbook,
)
from mecollect.excel.writer import export_template, export_workbook
from mecollect.grid.entry_grid import EntryGrid
from mecollect.logging.error_log import ErrorLogBuffer
from mecollect.models.cell import CellValue
from mecollect.models.disaggregation import DisaggregationDefinition, Indicator
from mecollect.models.import_result import RowStatus, SkipReason

SETTINGS = ExportSettings(extra_blank_rows=3, template_rows=5)


def _edit(path: Path, sheet: str, cells: dict[tuple[int, int], object]) -> None:
    wb = load_workbook(path)
    ws = wb[sheet]
    for (row, col), value in cells.items():
        ws.cell(row=row, column=col).value = value
    wb.save(path)


def _export(tmp_path, indicator, period, grid=None) -> Path:
    return export_workbook(indicator, period, grid or EntryGrid(), tmp_path, SETTINGS)


def test_import_prefilled_workbook(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    _edit(path, "Children enrolled", {
        (FIRST_DATA_ROW, 3): 14, (FIRST_DATA_ROW, 4): "Yes", (FIRST_DATA_ROW, 5): "N/A",
        (FIRST_DATA_ROW + 4, 3): 2.5,
    })
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")
    assert result.grid.get("v-female|v-g1") == CellValue("14", True, "N/A")
    assert result.grid.get("v-male|v-g2") == CellValue("2.5", False, "")
    assert len(result.grid) == 2
    assert result.imported_count == 2
    assert result.blank_count == 4
    assert result.unresolved_count == 0
    assert result.calc_type == "direct"
    assert result.column_mapping["Value (people)"] == "value"
    assert [r.disaggregation_value_ids for r in result.rows] == [("v-female", "v-g1"), ("v-male", "v-g2")]


def test_rows_typed_into_template_resolve_by_label(tmp_path, direct_indicator, direct_period):
    path = export_template(direct_indicator, direct_period, tmp_path, SETTINGS)
    log = ErrorLogBuffer(tmp_path / "logs")
    _edit(path, "Children enrolled", {
        (FIRST_DATA_ROW, 1): "male", (FIRST_DATA_ROW, 2): "GRADE 3", (FIRST_DATA_ROW, 3): 5,
        (FIRST_DATA_ROW + 1, 1): "Female", (FIRST_DATA_ROW + 1, 2): "Grade 9", (FIRST_DATA_ROW + 1, 3): 1,
        (FIRST_DATA_ROW + 2, 1): "Female", (FIRST_DATA_ROW + 2, 3): 1,
    })
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1", error_log=log)
    assert result.grid.keys() == ["v-male|v-g3"]
    skipped = [o for o in result.outcomes if o.status is RowStatus.SKIPPED]
    assert [(o.row_number, o.reason) for o in skipped] == [
        (FIRST_DATA_ROW + 1, SkipReason.UNRESOLVED_LABEL),
        (FIRST_DATA_ROW + 2, SkipReason.UNRESOLVED_LABEL),
    ]
    assert [r.row for r in log.records] == [FIRST_DATA_ROW + 1, FIRST_DATA_ROW + 2]
    assert "Grade 9" in log.records[0].message


def test_later_duplicate_row_overrides(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    extra = FIRST_DATA_ROW + 6
    _edit(path, "Children enrolled", {
        (FIRST_DATA_ROW, 3): 1,
        (extra, 1): "Female", (extra, 2): "Grade 1", (extra, 3): 9,
    })
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")
    assert result.grid.get("v-female|v-g1").value == "9"
    assert result.outcomes[0].reason is SkipReason.DUPLICATE_ROW
    assert [r.row_number for r in result.rows] == [extra]


def test_header_lookup_is_case_insensitive(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    _edit(path, "Children enrolled", {
        (HEADER_ROW, 1): "GENDER", (HEADER_ROW, 3): "value", (HEADER_ROW, 4): "Is Estimated",
        (FIRST_DATA_ROW, 3): 3, (FIRST_DATA_ROW, 4): "y",
    })
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")
    assert result.grid.get("v-female|v-g1") == CellValue("3", True, "")


def test_context_mismatch_rejected(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period, EntryGrid({"v-female|v-g1": CellValue("4")}))
    with pytest.raises(ContextMismatchError) as exc:
        import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q2")
    assert exc.value.found_period == "p-enrol-q1"
    assert "different indicator or period" in str(exc.value)


def test_foreign_workbook_rejected(tmp_path):
    path = tmp_path / "foreign.xlsx"
    wb = Workbook()
    wb.active["A1"] = "Gender"
    wb.save(path)
    with pytest.raises(NotProducedBySystemError, match="not created by this system"):
        import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")


def test_unreadable_file_is_format_error(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"this is not a zip archive")
    with pytest.raises(WorkbookFormatError):
        import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")


def test_missing_value_column_is_format_error(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    _edit(path, "Children enrolled", {(HEADER_ROW, 3): "Amount"})
    with pytest.raises(WorkbookFormatError, match="Value"):
        import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")


def test_formula_import_unknown_input(tmp_path, formula_indicator, formula_period):
    path = _export(tmp_path, formula_indicator, formula_period)
    extra = FIRST_DATA_ROW + 3
    _edit(path, "Pass rate", {
        (FIRST_DATA_ROW + 1, 3): 6,
        (FIRST_DATA_ROW + 2, 3): 30,
        (extra, 1): "Students failed", (extra, 3): 4,
    })
    result = import_workbook(path, indicator_id="ind-pass", period_id="p-pass-2024")
    assert result.grid.to_dict() == {
        "in-passed::v-male": {"value": "6", "is_estimated": False, "notes": ""},
        "in-sat::total": {"value": "30", "is_estimated": False, "notes": ""},
    }
    assert result.outcomes[-1].reason is SkipReason.UNKNOWN_INPUT
    assert [r.input_id for r in result.rows] == ["in-passed", "in-sat"]


def test_stale_combinations_pruned_against_live_indicator(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    _edit(path, "Children enrolled", {(FIRST_DATA_ROW, 3): 1, (FIRST_DATA_ROW + 3, 3): 2})
    # Grade 1 が削除された後の指標
    grade = direct_indicator.disaggregations[1]
    live = Indicator(
        id=direct_indicator.id, name=direct_indicator.name, unit=direct_indicator.unit,
        disaggregations=(
            direct_indicator.disaggregations[0],
            DisaggregationDefinition(id=grade.id, name=grade.name, values=grade.values[1:]),
        ),
    )
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1", indicator=live)
    assert result.pruned_keys == ["v-female|v-g1", "v-male|v-g1"]
    assert len(result.grid) == 0
    assert result.rows == []
    stale = [o.row_number for o in result.outcomes if o.reason is SkipReason.STALE_COMBINATION]
    assert stale == [FIRST_DATA_ROW, FIRST_DATA_ROW + 3]
    assert result.imported_count == 0


def test_repeated_value_header_keeps_first_column_mapped(tmp_path, direct_indicator, direct_period):
    path = _export(tmp_path, direct_indicator, direct_period)
    _edit(path, "Children enrolled", {
        (HEADER_ROW, 6): "Value (people)",
        (FIRST_DATA_ROW, 3): 7, (FIRST_DATA_ROW, 6): 99,
    })
    result = import_workbook(path, indicator_id="ind-enrol", period_id="p-enrol-q1")
    assert result.column_mapping["Value (people)"] == "value"
    assert result.grid.get("v-female|v-g1") == CellValue("7", False, "")
