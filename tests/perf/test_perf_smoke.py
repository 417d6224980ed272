from __future__ import annotations

import time
from pathlib import Path

from mecollect.excel.reader import import_workbook
from mecollect.excel.writer import export_workbook
from mecollect.grid.combinations import generate_combinations
from mecollect.grid.entry_grid import EntryGrid
from mecollect.grid.layout import layout_for
from mecollect.models.cell import CellValue
from mecollect.models.disaggregation import DisaggregationDefinition, DisaggregationValue, Indicator, Period

"""Performance smoke test: a realistically large grid (4 dimensions, 480
cells) exports and imports within a lenient CI budget."""


def _definition(def_id: str, size: int) -> DisaggregationDefinition:
    return DisaggregationDefinition(
        id=def_id,
        name=def_id.title(),
        values=tuple(
            DisaggregationValue(id=f"{def_id}-{i}", value_label=f"{def_id} {i}", sort_order=i, definition_id=def_id)
            for i in range(size)
        ),
    )


def test_large_grid_export_import(tmp_path: Path):
    indicator = Indicator(
        id="big", name="Big grid", unit="people",
        disaggregations=(_definition("sex", 2), _definition("age", 6), _definition("district", 8), _definition("site", 5)),
    )
    period = Period(id="p", period_key="2024", indicator_id="big")
    layout = layout_for(indicator)
    grid = EntryGrid({cell.key: CellValue(str(i)) for i, cell in enumerate(layout.cells())})
    assert len(grid) == 480

    start = time.perf_counter()
    path = export_workbook(indicator, period, grid, tmp_path)
    result = import_workbook(path, indicator_id="big", period_id="p")
    elapsed = time.perf_counter() - start

    assert result.grid == grid
    # CI でも十分余裕のある上限
    assert elapsed < 30, f"export+import too slow: {elapsed:.3f}s"


def test_combination_generation_is_fast():
    defs = [_definition("a", 10), _definition("b", 10), _definition("c", 10), _definition("d", 10)]
    start = time.perf_counter()
    combos = generate_combinations(defs)
    elapsed = time.perf_counter() - start
    assert len(combos) == 10_000
    assert elapsed < 2.0, f"combination generation too slow: {elapsed:.3f}s"
