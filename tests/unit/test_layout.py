from __future__ import annotations

from mecollect.grid.layout import DirectLayout, FormulaLayout, layout_for
from mecollect.models.disaggregation import CalcType, Indicator


def test_direct_layout_cells_follow_combination_order(direct_indicator):
    layout = layout_for(direct_indicator)
    assert isinstance(layout, DirectLayout)
    keys = [c.key for c in layout.cells()]
    assert keys[:3] == ["v-female|v-g1", "v-female|v-g2", "v-female|v-g3"]
    assert len(keys) == 6
    assert layout.valid_keys() == set(keys)


def test_direct_layout_without_dimensions_has_total_cell(catalog):
    layout = layout_for(catalog.indicator("ind-total"))
    assert [c.key for c in layout.cells()] == ["total"]


def test_formula_layout_keys_per_input(formula_indicator):
    layout = layout_for(formula_indicator)
    assert isinstance(layout, FormulaLayout)
    keys = [c.key for c in layout.cells()]
    assert keys == ["in-passed::v-female", "in-passed::v-male", "in-sat::total"]
    assert [c.input.id for c in layout.cells()] == ["in-passed", "in-passed", "in-sat"]


def test_formula_layout_dimension_union_and_lookup(formula_indicator):
    layout = FormulaLayout(formula_indicator)
    assert [d.id for d in layout.dimensions()] == ["d-gender"]
    assert layout.definitions_for("in-sat") == []
    assert layout.input_by_name("  students PASSED ").id == "in-passed"
    assert layout.input_by_name("unknown") is None
    assert layout.input_by_id("in-sat").name == "Students sat"


def test_formula_without_inputs_is_direct():
    indicator = Indicator(id="x", name="X", calc_type=CalcType.FORMULA)
    assert not indicator.is_formula
    assert isinstance(layout_for(indicator), DirectLayout)
