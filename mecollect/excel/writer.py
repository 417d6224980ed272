from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.cell.cell import Cell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter, quote_sheetname
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.worksheet import Worksheet

from ..config.loader import ExportSettings
from ..grid.entry_grid import EntryGrid
from ..grid.layout import FormulaLayout, GridCell, GridLayout, layout_for
from ..models.disaggregation import DisaggregationDefinition, Indicator, Period
from .format import (
    ESTIMATED_HEADER,
    FIRST_DATA_ROW,
    HEADER_ROW,
    INPUT_HEADER,
    LISTS_SHEET_NAME,
    META_SHEET_NAME,
    NO,
    NOTES_HEADER,
    VALUE_HEADER,
    WORKBOOK_SIGNATURE,
    YES,
    export_filename,
    sanitize_sheet_title,
    to_cell_value,
)
from .metadata import build_metadata_rows, dimension_headers

"""Workbook exporter.

Writes an entry grid (or an empty template) to an .xlsx workbook:

- visible data sheet: 5 reserved rows, header, one row per combination
  (per input x combination for formula indicators), then spare blank rows
- dropdown validations on dimension / Input / Estimated columns so invalid
  entries are rejected by the spreadsheet application itself
- hidden ``_meta`` sheet describing indicator, period and every ID <-> label
  mapping, hidden ``_lists`` sheet holding the dropdown sources
"""

__all__ = [
    "build_workbook",
    "export_workbook",
    "export_template",
]

logger = logging.getLogger(__name__)

# 検証範囲は最低この行数まで (ユーザーが行を追加しても効くように)
VALIDATION_MIN_ROWS = 1000

_HEADER_BORDER = Side(style="thin", color="2F5496")
_DATA_BORDER = Side(style="thin", color="D9D9D9")
HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
HEADER_FILL = PatternFill(fill_type="solid", fgColor="4472C4")
HEADER_BORDER = Border(top=_HEADER_BORDER, bottom=_HEADER_BORDER, left=_HEADER_BORDER, right=_HEADER_BORDER)
DATA_BORDER = Border(top=_DATA_BORDER, bottom=_DATA_BORDER, left=_DATA_BORDER, right=_DATA_BORDER)
ALT_ROW_FILL = PatternFill(fill_type="solid", fgColor="F2F2F2")
TITLE_FONT = Font(bold=True, size=14, color="2F5496")
BRANDING_FONT = Font(italic=True, size=10, color="595959")


def _set_text(cell: Cell, value: Any) -> None:
    """Assign a value, keeping strings that start with '=' as literal text."""
    cell.value = value
    if isinstance(value, str) and value.startswith("="):
        cell.data_type = "s"


def _value_header(indicator: Indicator, layout: GridLayout) -> str:
    if isinstance(layout, FormulaLayout) or not indicator.unit:
        return VALUE_HEADER
    return f"{VALUE_HEADER} ({indicator.unit})"


def _column_width(header: str) -> int:
    if header == NOTES_HEADER:
        return 40
    if header == ESTIMATED_HEADER:
        return 12
    if header.startswith(VALUE_HEADER):
        return 18
    return 22


def _write_branding(ws: Worksheet, indicator: Indicator, period: Period, layout: GridLayout) -> None:
    calc = "formula" if isinstance(layout, FormulaLayout) else "direct"
    unit = indicator.unit or "-"
    stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M UTC")
    lines = [
        WORKBOOK_SIGNATURE,
        f"Indicator: {indicator.name}",
        f"Period: {period.period_key}",
        f"Unit: {unit} | Calculation: {calc} | Generated: {stamp}",
        "Enter values below the header. Do not edit or remove the rows above the header.",
    ]
    for offset, line in enumerate(lines, start=1):
        cell = ws.cell(row=offset, column=1)
        _set_text(cell, line)
        cell.font = TITLE_FONT if offset == 1 else BRANDING_FONT


def _write_lists_sheet(
    wb: Workbook, dims: Sequence[DisaggregationDefinition], input_names: Sequence[str]
) -> dict[str, str]:
    """Write dropdown sources, returning list-validation formulas keyed by def ID ('' for inputs)."""
    ws = wb.create_sheet(LISTS_SHEET_NAME)
    ws.sheet_state = "hidden"
    sheet_ref = quote_sheetname(LISTS_SHEET_NAME)
    formulas: dict[str, str] = {}
    sources: list[tuple[str, list[str]]] = [
        (d.id, [v.value_label for v in d.sorted_values()]) for d in dims
    ]
    if input_names:
        sources.append(("", list(input_names)))
    for col_idx, (source_id, labels) in enumerate(sources, start=1):
        for row_idx, label in enumerate(labels, start=1):
            _set_text(ws.cell(row=row_idx, column=col_idx), label)
        letter = get_column_letter(col_idx)
        formulas[source_id] = f"{sheet_ref}!${letter}$1:${letter}${len(labels)}"
    return formulas


def _add_list_validation(
    ws: Worksheet, formula: str, column: int, last_row: int, title: str, message: str
) -> None:
    dv = DataValidation(
        type="list",
        formula1=formula,
        allow_blank=True,
        showErrorMessage=True,
        errorStyle="stop",
        errorTitle=title,
        error=message,
    )
    letter = get_column_letter(column)
    dv.add(f"{letter}{FIRST_DATA_ROW}:{letter}{last_row}")
    ws.add_data_validation(dv)


def _grid_rows(layout: GridLayout, grid: EntryGrid | None, dims: Sequence[DisaggregationDefinition]) -> list[list[Any]]:
    """Prefilled data rows in layout order."""
    rows: list[list[Any]] = []
    for cell in layout.cells():
        rows.append(_row_for(cell, grid, dims, isinstance(layout, FormulaLayout)))
    return rows


def _row_for(
    cell: GridCell, grid: EntryGrid | None, dims: Sequence[DisaggregationDefinition], formula: bool
) -> list[Any]:
    labels = {v.definition_id: v.value_label for v in cell.combination}
    row: list[Any] = []
    if formula:
        row.append(cell.input.name if cell.input is not None else "")
    # 入力が持たない次元は空欄
    row.extend(labels.get(d.id, "") for d in dims)
    stored = grid.get(cell.key) if grid is not None else None
    if stored is None or stored.is_blank:
        row.extend(["", "", stored.notes if stored is not None else ""])
    else:
        row.extend([to_cell_value(stored.value), YES if stored.is_estimated else NO, stored.notes])
    return row


def build_workbook(
    indicator: Indicator,
    period: Period,
    grid: EntryGrid | None,
    *,
    extra_blank_rows: int,
    blank_rows_only: int | None = None,
) -> Workbook:
    """Build the workbook in memory.

    ``blank_rows_only`` switches to template mode: no prefilled combination
    rows, just that many empty rows.
    """
    layout = layout_for(indicator)
    formula = isinstance(layout, FormulaLayout)
    dims = layout.dimensions()
    dim_headers = dimension_headers(dims)

    headers: list[str] = []
    if formula:
        headers.append(INPUT_HEADER)
    headers.extend(dim_headers[d.id] for d in dims)
    headers.extend([_value_header(indicator, layout), ESTIMATED_HEADER, NOTES_HEADER])

    if blank_rows_only is not None:
        data_rows: list[list[Any]] = []
        spare_rows = blank_rows_only
    else:
        data_rows = _grid_rows(layout, grid, dims)
        spare_rows = extra_blank_rows

    wb = Workbook()
    ws = wb.active
    ws.title = sanitize_sheet_title(indicator.name)

    _write_branding(ws, indicator, period, layout)

    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=HEADER_ROW, column=col_idx)
        _set_text(cell, header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(col_idx)].width = _column_width(header)
    ws.row_dimensions[HEADER_ROW].height = 28

    total_rows = len(data_rows) + spare_rows
    for offset in range(total_rows):
        row_idx = FIRST_DATA_ROW + offset
        values = data_rows[offset] if offset < len(data_rows) else [""] * len(headers)
        alternate = offset % 2 == 1
        for col_idx, value in enumerate(values, start=1):
            cell = ws.cell(row=row_idx, column=col_idx)
            if value != "":
                _set_text(cell, value)
            cell.border = DATA_BORDER
            cell.alignment = Alignment(vertical="center")
            if alternate:
                cell.fill = ALT_ROW_FILL

    last_row = max(FIRST_DATA_ROW + total_rows - 1, HEADER_ROW + VALIDATION_MIN_ROWS)
    input_names = [inp.name for inp in layout.inputs] if isinstance(layout, FormulaLayout) else []
    formulas = _write_lists_sheet(wb, dims, input_names)

    column = 1
    if formula:
        _add_list_validation(
            ws, formulas[""], column, last_row, f"Invalid {INPUT_HEADER}", "Select one of the indicator inputs."
        )
        column += 1
    for definition in dims:
        labels = ", ".join(v.value_label for v in definition.sorted_values())
        _add_list_validation(
            ws, formulas[definition.id], column, last_row, f"Invalid {definition.name}", f"Select: {labels}"
        )
        column += 1
    estimated_col = column + 1
    _add_list_validation(
        ws, f'"{YES},{NO}"', estimated_col, last_row, f"Invalid {ESTIMATED_HEADER}", "Select Yes or No."
    )

    last_letter = get_column_letter(len(headers))
    ws.auto_filter.ref = f"A{HEADER_ROW}:{last_letter}{HEADER_ROW}"
    ws.freeze_panes = ws.cell(row=FIRST_DATA_ROW, column=1)

    meta = wb.create_sheet(META_SHEET_NAME)
    for row in build_metadata_rows(indicator, period, layout):
        meta.append(row)
    # 値が '=' で始まる場合に備えて文字列型を強制
    for meta_row in meta.iter_rows():
        for cell in meta_row:
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"
    meta.sheet_state = "veryHidden"

    wb.active = 0
    return wb


def export_workbook(
    indicator: Indicator,
    period: Period,
    grid: EntryGrid,
    destination: Path,
    settings: ExportSettings | None = None,
) -> Path:
    """Export the grid into ``destination`` (a directory). Returns the file path."""
    settings = settings or ExportSettings()
    wb = build_workbook(indicator, period, grid, extra_blank_rows=settings.extra_blank_rows)
    path = destination / export_filename(indicator.name, period.period_key)
    destination.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    logger.info(f"exported {len(grid)} cell(s) of '{indicator.name}' {period.period_key} -> {path}")
    return path


def export_template(
    indicator: Indicator,
    period: Period,
    destination: Path,
    settings: ExportSettings | None = None,
    row_count: int | None = None,
) -> Path:
    """Export an empty data-entry template with ``row_count`` blank rows."""
    settings = settings or ExportSettings()
    rows = row_count if row_count is not None else settings.template_rows
    wb = build_workbook(indicator, period, None, extra_blank_rows=0, blank_rows_only=rows)
    path = destination / export_filename(indicator.name, period.period_key, template=True)
    destination.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    logger.info(f"exported template ({rows} rows) for '{indicator.name}' {period.period_key} -> {path}")
    return path
