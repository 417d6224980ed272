from __future__ import annotations

from mecollect.grid.entry_grid import EntryGrid
from mecollect.grid.layout import layout_for
from mecollect.models.cell import CellValue


def test_absent_key_means_never_entered():
    grid = EntryGrid()
    assert grid.get("v-female|v-g1") is None
    assert "v-female|v-g1" not in grid
    assert len(grid) == 0


def test_update_field_creates_and_modifies_cells():
    grid = EntryGrid()
    grid.update_field("total", value="12")
    cell = grid.update_field("total", is_estimated=True)
    assert cell == CellValue(value="12", is_estimated=True, notes="")
    grid.update_field("total", notes="rough count")
    assert grid.get("total").notes == "rough count"
    assert grid.get("total").value == "12"


def test_reconcile_drops_stale_keys_without_raising(direct_indicator):
    grid = EntryGrid({
        "v-female|v-g1": CellValue("3"),
        "v-removed|v-g1": CellValue("9"),
        "total": CellValue("1"),
    })
    dropped = grid.reconcile(layout_for(direct_indicator))
    assert sorted(dropped) == ["total", "v-removed|v-g1"]
    assert grid.keys() == ["v-female|v-g1"]


def test_numeric_total_ignores_text_and_blanks():
    grid = EntryGrid({
        "a": CellValue("2.5"),
        "b": CellValue("abc"),
        "c": CellValue(""),
        "d": CellValue("4"),
        "e": CellValue("inf"),
    })
    assert grid.numeric_total() == 6.5


def test_json_round_trip_keeps_cells():
    grid = EntryGrid({"total": CellValue("7", True, "N/A")})
    restored = EntryGrid.from_json(grid.to_json())
    assert restored == grid
    assert restored.get("total").notes == "N/A"
