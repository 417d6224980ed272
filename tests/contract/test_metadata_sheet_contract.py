from __future__ import annotations

from pathlib import Path

from openpyxl import load_workbook

from mecollect.excel.writer import export_workbook
from mecollect.grid.entry_grid import EntryGrid

"""Hidden metadata sheet contract: row kinds and scalar keys that importers
(including older releases) rely on."""

SCALAR_KEYS = [
    "formatVersion", "indicatorId", "indicatorName", "periodId", "periodKey",
    "calcType", "indicatorType", "unit", "disaggregationCount",
]


def _meta_rows(path: Path) -> list[list]:
    ws = load_workbook(path)["_meta"]
    return [[c for c in row if c is not None] for row in ws.iter_rows(values_only=True)]


def test_direct_metadata_rows(tmp_path: Path, direct_indicator, direct_period):
    rows = _meta_rows(export_workbook(direct_indicator, direct_period, EntryGrid(), tmp_path))
    assert [r[0] for r in rows[: len(SCALAR_KEYS)]] == SCALAR_KEYS
    scalars = {r[0]: (r[1] if len(r) > 1 else "") for r in rows[: len(SCALAR_KEYS)]}
    assert scalars["indicatorId"] == "ind-enrol"
    assert scalars["periodKey"] == "2024-Q1"
    assert scalars["disaggregationCount"] == "2"
    assert ["dimension", "d-gender", "Gender", "Gender"] in rows
    assert ["dimensionValue", "d-grade", "v-g3", "Grade 3", "3"] in rows
    assert not any(r[0] == "input" for r in rows)


def test_formula_metadata_rows(tmp_path: Path, formula_indicator, formula_period):
    rows = _meta_rows(export_workbook(formula_indicator, formula_period, EntryGrid(), tmp_path))
    assert ["input", "in-passed", "Students passed", "people", "true"] in rows
    assert ["input", "in-sat", "Students sat", "people", "false"] in rows
    assert ["inputDimension", "in-passed", "d-gender"] in rows
    assert not any(r[:2] == ["inputDimension", "in-sat"] for r in rows)
