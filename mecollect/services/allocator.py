from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from ..grid.entry_grid import EntryGrid
from ..grid.layout import GridLayout
from ..models.cell import CellValue
from ..models.disaggregation import Indicator
from ..models.submission import AtomicValue, ImportRow

"""Submission value allocator.

Turns a completed entry grid (direct or formula) into the flat list of atomic
values the backend stores. Each atomic value carries at most one
disaggregation value ID, so a cell whose combination has k values is spread
over k atomic values (see ``split_across_disaggregations``). Blank cells are
never sent.
"""

__all__ = [
    "AllocationError",
    "split_across_disaggregations",
    "allocate",
    "allocate_rows",
]

logger = logging.getLogger(__name__)


class AllocationError(Exception):
    """A non-blank cell of a quantitative indicator is not a number."""


def split_across_disaggregations(
    magnitude: float, value_ids: Sequence[str]
) -> list[tuple[str | None, float]]:
    """Spread one cell magnitude over its disaggregation value IDs.

    k = len(value_ids) >= 1: k parts, one per ID, each ``magnitude / k``.
    k = 0: one untagged part with the full magnitude.

    NOTE: known semantic risk. Dividing by k treats a joint breakdown
    ("females in grade 3") as if it were k independent per-axis breakdowns, so
    summing the stored values by a single axis does not reproduce the entered
    joint figures. Kept as-is for compatibility with data already stored this
    way; swap the rule here (and only here) if the business rule changes.
    """
    k = len(value_ids)
    if k == 0:
        return [(None, magnitude)]
    return [(value_id, magnitude / k) for value_id in value_ids]


def _parse_number(raw: str, where: str) -> float:
    try:
        number = float(raw.strip().replace(",", ""))
    except ValueError:
        raise AllocationError(f"{where}: '{raw}' is not a number") from None
    if not math.isfinite(number):
        raise AllocationError(f"{where}: '{raw}' is not a finite number")
    return number


def _emit(
    indicator: Indicator,
    input_id: str | None,
    value_ids: Sequence[str],
    cell: CellValue,
    where: str,
) -> list[AtomicValue]:
    if indicator.is_qualitative:
        # テキストは分割できないので各値にそのままコピー
        parts: list[tuple[str | None, float | None]] = (
            [(value_id, None) for value_id in value_ids] if value_ids else [(None, None)]
        )
        text: str | None = cell.value
    else:
        magnitude = _parse_number(cell.value, where)
        parts = list(split_across_disaggregations(magnitude, value_ids))
        text = None
    return [
        AtomicValue(
            indicator_id=indicator.id,
            input_id=input_id,
            disaggregation_value_id=value_id,
            value_number=number,
            value_text=text,
            is_estimated=cell.is_estimated,
            notes=cell.notes,
        )
        for value_id, number in parts
    ]


def allocate(grid: EntryGrid, layout: GridLayout, indicator: Indicator) -> list[AtomicValue]:
    """Atomic values for every non-blank cell, in layout order.

    Grid keys the layout does not produce are ignored (reconcile the grid
    first to drop them explicitly).
    """
    values: list[AtomicValue] = []
    skipped = 0
    for cell_ref in layout.cells():
        cell = grid.get(cell_ref.key)
        if cell is None or cell.is_blank:
            skipped += 1
            continue
        input_id = cell_ref.input.id if cell_ref.input is not None else None
        value_ids = [v.id for v in cell_ref.combination]
        values.extend(_emit(indicator, input_id, value_ids, cell, f"cell {cell_ref.key}"))
    logger.debug(f"allocated {len(values)} atomic value(s) for {indicator.id}; {skipped} blank cell(s)")
    return values


def allocate_rows(rows: Iterable[ImportRow], indicator: Indicator) -> list[AtomicValue]:
    """Atomic values for imported rows, same rules as ``allocate``."""
    values: list[AtomicValue] = []
    for row in rows:
        cell = CellValue(value=row.value, is_estimated=row.is_estimated, notes=row.notes)
        if cell.is_blank:
            continue
        values.extend(
            _emit(indicator, row.input_id, row.disaggregation_value_ids, cell, f"row {row.row_number}")
        )
    return values
