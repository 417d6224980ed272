from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import pandas as pd

from ..grid.entry_grid import EntryGrid
from ..grid.keys import combination_key, input_combination_key
from ..grid.layout import FormulaLayout, GridLayout, layout_for
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.cell import CellValue
from ..models.disaggregation import DisaggregationValue, Indicator, IndicatorInput
from ..models.import_result import ImportResult, RowOutcome, RowStatus, SkipReason
from ..models.submission import ImportRow
from .format import (
    ESTIMATED_HEADER,
    INPUT_HEADER,
    META_SHEET_ALIASES,
    NOTES_HEADER,
    RESERVED_ROWS,
    VALUE_HEADER,
    WORKBOOK_SIGNATURE,
    cell_text,
    is_blank,
    normalize_header,
    parse_yes_no,
    strip_unit_suffix,
)
from .metadata import MetadataError, WorkbookMetadata, parse_metadata

"""Workbook importer.

1. Locate the hidden metadata sheet (absent -> not produced by this system)
2. Check the embedded indicator / period IDs against the caller's context
3. Skip the 5 reserved rows, resolve columns by header text
4. Resolve every row's labels to value IDs through the metadata; rows that do
   not resolve are skipped and reported as outcomes, never fail the file
5. Build the entry grid (canonical keys) and the flat ImportRow list
"""

__all__ = [
    "WorkbookImportError",
    "NotProducedBySystemError",
    "ContextMismatchError",
    "WorkbookFormatError",
    "ColumnMap",
    "read_workbook_sheets",
    "import_workbook",
]

logger = logging.getLogger(__name__)

NOT_PRODUCED_MESSAGE = (
    "This file was not created by this system. Export a template for this indicator "
    "and period first, then fill it in."
)


class WorkbookImportError(Exception):
    """Base class for whole-file import rejections."""


class NotProducedBySystemError(WorkbookImportError):
    def __init__(self, detail: str = "") -> None:
        message = NOT_PRODUCED_MESSAGE if not detail else f"{NOT_PRODUCED_MESSAGE} ({detail})"
        super().__init__(message)
        self.detail = detail


class ContextMismatchError(WorkbookImportError):
    """The workbook belongs to another indicator or period."""
    def __init__(
        self, expected_indicator: str, expected_period: str, found_indicator: str, found_period: str
    ) -> None:
        super().__init__(
            "This file is for a different indicator or period "
            f"(file: indicator={found_indicator} period={found_period}; "
            f"expected: indicator={expected_indicator} period={expected_period})"
        )
        self.expected_indicator = expected_indicator
        self.expected_period = expected_period
        self.found_indicator = found_indicator
        self.found_period = found_period


class WorkbookFormatError(WorkbookImportError):
    """Unreadable file or a data sheet whose structure cannot be used."""


@dataclass
class ColumnMap:
    value: int | None = None
    estimated: int | None = None
    notes: int | None = None
    input: int | None = None
    dimensions: dict[str, int] = field(default_factory=dict)  # def_id -> 列位置
    mapping: dict[str, str | None] = field(default_factory=dict)  # ヘッダ -> 意味列


def read_workbook_sheets(source: Path | str | IO[bytes]) -> dict[str, pd.DataFrame]:
    """Read every sheet raw (``header=None``) with NA conversion disabled.

    Cells come back as Python objects so numbers keep their int/float type and
    strings such as ``N/A`` or ``NULL`` in notes are not turned into NaN.
    """
    try:
        xls = pd.ExcelFile(source, engine="openpyxl")
        dfs: dict[str, pd.DataFrame] = {}
        for name in xls.sheet_names:
            dfs[str(name)] = xls.parse(
                name, header=None, dtype=object, keep_default_na=False, na_values=[]
            )
        return dfs
    except Exception as e:  # 破損ファイル・非 xlsx はすべて形式エラーとして扱う
        raise WorkbookFormatError(f"unable to read workbook: {e}") from e


def _resolve_columns(header: list[str], meta: WorkbookMetadata, layout: GridLayout) -> ColumnMap:
    by_header = {normalize_header(text): def_id for def_id, text in meta.headers.items()}
    dims_in_layout = {d.id for d in layout.dimensions()}
    columns = ColumnMap()
    for idx, text in enumerate(header):
        if not text.strip():
            continue
        norm = normalize_header(text)
        bare = normalize_header(strip_unit_suffix(text))
        if norm in by_header and by_header[norm] in dims_in_layout:
            def_id = by_header[norm]
            if def_id not in columns.dimensions:
                columns.dimensions[def_id] = idx
                columns.mapping[text] = f"disaggregation:{def_id}"
                continue
        if bare == VALUE_HEADER.lower() and columns.value is None:
            columns.value = idx
            columns.mapping[text] = "value"
        elif bare in (ESTIMATED_HEADER.lower(), "is estimated") and columns.estimated is None:
            columns.estimated = idx
            columns.mapping[text] = "isEstimated"
        elif bare == NOTES_HEADER.lower() and columns.notes is None:
            columns.notes = idx
            columns.mapping[text] = "notes"
        elif bare == INPUT_HEADER.lower() and columns.input is None:
            columns.input = idx
            columns.mapping[text] = "input"
        else:
            # 同じ見出しの 2 列目以降で既存の割当を上書きしない
            columns.mapping.setdefault(text, None)
    return columns


def _at(row: list[Any], idx: int | None) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _resolve_input(layout: FormulaLayout, text: str) -> IndicatorInput | None:
    return layout.input_by_name(text) or layout.input_by_id(text.strip())


def import_workbook(
    source: Path | str | IO[bytes],
    *,
    indicator_id: str,
    period_id: str,
    file_name: str | None = None,
    indicator: Indicator | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ImportResult:
    """Import a workbook exported by this system into an entry grid.

    Parameters
    ----------
    source: file path or binary stream
    indicator_id / period_id: the caller's current context; the workbook must match
    file_name: name recorded in the result (defaults to the path's name)
    indicator: live indicator; when given the grid is reconciled against it and
        cells for combinations that no longer exist are dropped
    error_log: buffer receiving one ErrorRecord per row dropped for unresolved labels

    Raises
    ------
    NotProducedBySystemError, ContextMismatchError, WorkbookFormatError
    """
    if file_name is None:
        file_name = Path(source).name if isinstance(source, (str, Path)) else "imported_data.xlsx"

    sheets = read_workbook_sheets(source)

    meta_name = next((n for n in sheets if n in META_SHEET_ALIASES), None)
    if meta_name is None:
        raise NotProducedBySystemError("metadata sheet missing")
    try:
        meta = parse_metadata(sheets[meta_name])
    except MetadataError as e:
        raise NotProducedBySystemError(str(e)) from e

    if meta.indicator_id != str(indicator_id) or meta.period_id != str(period_id):
        raise ContextMismatchError(str(indicator_id), str(period_id), meta.indicator_id, meta.period_id)

    data_name = next((n for n in sheets if not n.startswith("_")), None)
    if data_name is None:
        raise WorkbookFormatError("no data sheet found")
    df = sheets[data_name]
    if df.shape[0] == 0 or cell_text(df.iat[0, 0]).strip() != WORKBOOK_SIGNATURE:
        raise NotProducedBySystemError("data sheet signature missing")
    if df.shape[0] <= RESERVED_ROWS:
        raise WorkbookFormatError(f"sheet '{data_name}' lacks a header row")

    layout = meta.layout()
    formula = isinstance(layout, FormulaLayout)
    header = [cell_text(v) for v in df.iloc[RESERVED_ROWS].tolist()]
    columns = _resolve_columns(header, meta, layout)
    if columns.value is None:
        raise WorkbookFormatError(f"sheet '{data_name}' has no '{VALUE_HEADER}' column")
    if formula and columns.input is None:
        raise WorkbookFormatError(f"sheet '{data_name}' has no '{INPUT_HEADER}' column")

    grid = EntryGrid()
    outcomes: list[RowOutcome] = []
    # key -> (ImportRow, outcomes 内の位置)
    accepted: dict[str, tuple[ImportRow, int]] = {}

    def skip(row_number: int, reason: SkipReason, detail: str) -> None:
        outcomes.append(RowOutcome(row_number, RowStatus.SKIPPED, reason, detail))
        if error_log is not None and reason is not SkipReason.BLANK_VALUE:
            error_log.append(ErrorRecord.for_skipped_row(file_name, data_name, outcomes[-1]))

    for idx in range(RESERVED_ROWS + 1, df.shape[0]):
        raw = df.iloc[idx].tolist()
        if all(is_blank(v) for v in raw):
            continue
        row_number = idx + 1

        value = cell_text(_at(raw, columns.value))
        if value.strip() == "":
            skip(row_number, SkipReason.BLANK_VALUE, "value cell is blank")
            continue

        input_obj: IndicatorInput | None = None
        if formula:
            input_text = cell_text(_at(raw, columns.input)).strip()
            input_obj = _resolve_input(layout, input_text) if input_text else None
            if input_obj is None:
                skip(row_number, SkipReason.UNKNOWN_INPUT, f"unknown input '{input_text}'")
                continue
            definitions = layout.definitions_for(input_obj.id)
        else:
            definitions = layout.dimensions()

        matched: list[DisaggregationValue] = []
        failure = ""
        for definition in definitions:
            label = cell_text(_at(raw, columns.dimensions.get(definition.id))).strip()
            if not label:
                failure = f"no value given for '{definition.name}'"
                break
            found = definition.find_label(label)
            if found is None:
                failure = f"'{label}' is not a value of '{definition.name}'"
                break
            matched.append(found)
        if failure:
            skip(row_number, SkipReason.UNRESOLVED_LABEL, failure)
            continue

        if input_obj is not None:
            key = input_combination_key(input_obj.id, matched)
        else:
            key = combination_key(matched)

        cell = CellValue(
            value=value,
            is_estimated=parse_yes_no(_at(raw, columns.estimated)),
            notes=cell_text(_at(raw, columns.notes)),
        )
        if key in accepted:
            _, previous = accepted[key]
            earlier = outcomes[previous]
            outcomes[previous] = RowOutcome(
                earlier.row_number, RowStatus.SKIPPED, SkipReason.DUPLICATE_ROW,
                f"superseded by row {row_number}",
            )
            logger.warning(f"{file_name}: row {row_number} overrides row {earlier.row_number} ({key})")
        grid.set(key, cell)
        outcomes.append(RowOutcome(row_number, RowStatus.IMPORTED))
        accepted[key] = (
            ImportRow(
                row_number=row_number,
                input_id=input_obj.id if input_obj is not None else None,
                value=value,
                disaggregation_value_ids=tuple(v.id for v in matched),
                is_estimated=cell.is_estimated,
                notes=cell.notes,
            ),
            len(outcomes) - 1,
        )

    pruned: list[str] = []
    if indicator is not None:
        pruned = grid.reconcile(layout_for(indicator))
        for key in pruned:
            import_row, position = accepted.pop(key)
            outcomes[position] = RowOutcome(
                import_row.row_number, RowStatus.SKIPPED, SkipReason.STALE_COMBINATION,
                "combination no longer exists for this indicator",
            )

    result = ImportResult(
        indicator_id=meta.indicator_id,
        period_id=meta.period_id,
        calc_type=meta.calc_type.value,
        file_name=file_name,
        grid=grid,
        rows=[row for row, _ in accepted.values()],
        column_mapping=columns.mapping,
        outcomes=outcomes,
        pruned_keys=pruned,
    )
    logger.info(
        f"{file_name}: imported={result.imported_count} skipped={result.skipped_count} "
        f"(blank={result.blank_count})"
    )
    return result
