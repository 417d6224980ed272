from __future__ import annotations

from mecollect.grid.combinations import combination_count, generate_combinations
from mecollect.grid.keys import TOTAL_KEY, combination_key
from mecollect.models.disaggregation import DisaggregationDefinition, DisaggregationValue


def _definition(def_id: str, labels: list[str], orders: list[int] | None = None) -> DisaggregationDefinition:
    orders = orders or list(range(1, len(labels) + 1))
    return DisaggregationDefinition(
        id=def_id,
        name=def_id.title(),
        values=tuple(
            DisaggregationValue(id=f"{def_id}-{label.lower()}", value_label=label, sort_order=o, definition_id=def_id)
            for label, o in zip(labels, orders)
        ),
    )


def test_no_definitions_yields_single_total_combination():
    combos = generate_combinations([])
    assert combos == [()]
    assert combination_key(combos[0]) == TOTAL_KEY


def test_cartesian_completeness_and_unique_keys():
    defs = [
        _definition("gender", ["F", "M"]),
        _definition("age", ["Child", "Youth", "Adult"]),
        _definition("area", ["Urban", "Rural", "Camp", "Other"]),
    ]
    combos = generate_combinations(defs)
    assert len(combos) == 2 * 3 * 4
    assert combination_count(defs) == 24
    keys = [combination_key(c) for c in combos]
    assert len(set(keys)) == len(keys)
    for combo in combos:
        assert [v.definition_id for v in combo] == ["gender", "age", "area"]


def test_odometer_order_last_definition_fastest():
    defs = [_definition("a", ["1", "2"]), _definition("b", ["x", "y", "z"])]
    labels = [tuple(v.value_label for v in c) for c in generate_combinations(defs)]
    assert labels == [
        ("1", "x"), ("1", "y"), ("1", "z"),
        ("2", "x"), ("2", "y"), ("2", "z"),
    ]


def test_values_ordered_by_sort_order_not_declaration():
    defs = [_definition("g", ["Male", "Female"], orders=[2, 1])]
    labels = [c[0].value_label for c in generate_combinations(defs)]
    assert labels == ["Female", "Male"]


def test_equal_sort_order_keeps_declaration_order():
    defs = [_definition("g", ["B", "A", "C"], orders=[0, 0, 0])]
    labels = [c[0].value_label for c in generate_combinations(defs)]
    assert labels == ["B", "A", "C"]


def test_repeated_generation_is_stable():
    defs = [_definition("a", ["1", "2"]), _definition("b", ["x", "y"])]
    first = [combination_key(c) for c in generate_combinations(defs)]
    second = [combination_key(c) for c in generate_combinations(defs)]
    assert first == second


def test_inert_definition_does_not_collapse_grid():
    inert = DisaggregationDefinition(id="empty", name="Empty", values=())
    defs = [_definition("a", ["1", "2"]), inert]
    combos = generate_combinations(defs)
    assert len(combos) == 2
    assert combination_count(defs) == 2
