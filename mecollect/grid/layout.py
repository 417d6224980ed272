from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from ..models.disaggregation import (
    DisaggregationDefinition,
    Indicator,
    IndicatorInput,
    active_definitions,
)
from .combinations import Combination, generate_combinations
from .keys import combination_key, input_combination_key

"""Grid layouts: which cells an indicator's entry grid can hold.

A direct indicator has one set of combinations over its own disaggregations.
A formula indicator has one set per input, each over that input's own
disaggregations, and its cells are keyed by input as well as combination.
Both layouts enumerate cells in a fixed order that the exporter and the
allocator share.
"""

__all__ = [
    "GridCell",
    "DirectLayout",
    "FormulaLayout",
    "GridLayout",
    "layout_for",
]


@dataclass(frozen=True)
class GridCell:
    key: str
    combination: Combination
    input: IndicatorInput | None = None


class DirectLayout:
    """Cells of a directly reported indicator."""

    def __init__(self, indicator: Indicator) -> None:
        self.indicator = indicator
        self.definitions: list[DisaggregationDefinition] = active_definitions(
            indicator.disaggregations
        )
        self.combinations: list[Combination] = generate_combinations(self.definitions)

    def cells(self) -> Iterator[GridCell]:
        for combination in self.combinations:
            yield GridCell(key=combination_key(combination), combination=combination)

    def valid_keys(self) -> set[str]:
        return {cell.key for cell in self.cells()}

    def dimensions(self) -> list[DisaggregationDefinition]:
        return list(self.definitions)


class FormulaLayout:
    """Cells of a formula indicator: one independent sub-grid per input."""

    def __init__(self, indicator: Indicator) -> None:
        self.indicator = indicator
        self.inputs: list[IndicatorInput] = list(indicator.inputs)
        self._definitions: dict[str, list[DisaggregationDefinition]] = {}
        self._combinations: dict[str, list[Combination]] = {}
        for inp in self.inputs:
            defs = active_definitions(inp.disaggregations)
            self._definitions[inp.id] = defs
            self._combinations[inp.id] = generate_combinations(defs)

    def definitions_for(self, input_id: str) -> list[DisaggregationDefinition]:
        return list(self._definitions.get(input_id, []))

    def combinations_for(self, input_id: str) -> list[Combination]:
        return list(self._combinations.get(input_id, [()]))

    def input_by_name(self, name: str) -> IndicatorInput | None:
        wanted = name.strip().lower()
        for inp in self.inputs:
            if inp.name.strip().lower() == wanted:
                return inp
        return None

    def input_by_id(self, input_id: str) -> IndicatorInput | None:
        for inp in self.inputs:
            if inp.id == input_id:
                return inp
        return None

    def dimensions(self) -> list[DisaggregationDefinition]:
        """Union of all input dimensions, first-seen order, unique by ID."""
        seen: dict[str, DisaggregationDefinition] = {}
        for inp in self.inputs:
            for definition in self._definitions[inp.id]:
                if definition.id not in seen:
                    seen[definition.id] = definition
        return list(seen.values())

    def cells(self) -> Iterator[GridCell]:
        for inp in self.inputs:
            for combination in self._combinations[inp.id]:
                yield GridCell(
                    key=input_combination_key(inp.id, combination),
                    combination=combination,
                    input=inp,
                )

    def valid_keys(self) -> set[str]:
        return {cell.key for cell in self.cells()}


GridLayout = DirectLayout | FormulaLayout


def layout_for(indicator: Indicator) -> GridLayout:
    if indicator.is_formula:
        return FormulaLayout(indicator)
    return DirectLayout(indicator)
