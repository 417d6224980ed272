from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Disaggregation and indicator reference data.

Definitions, their ordered values, indicator inputs and periods are immutable
reference data loaded from the catalog (or supplied by the host application).
A definition without values is inert and never takes part in combination
generation.
"""

__all__ = [
    "CalcType",
    "IndicatorType",
    "DisaggregationValue",
    "DisaggregationDefinition",
    "IndicatorInput",
    "Indicator",
    "Period",
    "active_definitions",
]


class CalcType(Enum):
    """How an indicator value is obtained."""
    DIRECT = "direct"
    FORMULA = "formula"


class IndicatorType(Enum):
    """Quantitative indicators carry numbers, qualitative ones free text."""
    QUANTITATIVE = "quantitative"
    QUALITATIVE = "qualitative"


@dataclass(frozen=True)
class DisaggregationValue:
    id: str
    value_label: str
    sort_order: int
    definition_id: str

    @staticmethod
    def from_dict(data: Mapping[str, Any], definition_id: str) -> DisaggregationValue:
        return DisaggregationValue(
            id=str(data["id"]),
            value_label=str(data.get("value_label", data.get("label", ""))),
            sort_order=int(data.get("sort_order", 0)),
            definition_id=definition_id,
        )


@dataclass(frozen=True)
class DisaggregationDefinition:
    """A categorical axis (e.g. gender) with its allowed values."""
    id: str
    name: str
    values: tuple[DisaggregationValue, ...] = ()

    @property
    def is_inert(self) -> bool:
        return len(self.values) == 0

    def sorted_values(self) -> list[DisaggregationValue]:
        # sorted() は安定ソート: sort_order 同値は宣言順を維持
        return sorted(self.values, key=lambda v: v.sort_order)

    def find_label(self, label: str) -> DisaggregationValue | None:
        """Case-insensitive exact label lookup."""
        wanted = label.strip().lower()
        for value in self.values:
            if value.value_label.strip().lower() == wanted:
                return value
        return None

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DisaggregationDefinition:
        def_id = str(data["id"])
        raw_values = data.get("values") or []
        return DisaggregationDefinition(
            id=def_id,
            name=str(data["name"]),
            values=tuple(DisaggregationValue.from_dict(v, def_id) for v in raw_values),
        )


def active_definitions(
    definitions: Iterable[DisaggregationDefinition],
) -> list[DisaggregationDefinition]:
    """Drop inert definitions, keeping declaration order."""
    return [d for d in definitions if not d.is_inert]


@dataclass(frozen=True)
class IndicatorInput:
    """Named sub-input of a formula indicator with its own disaggregations."""
    id: str
    name: str
    unit: str = ""
    is_required: bool = True
    disaggregations: tuple[DisaggregationDefinition, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> IndicatorInput:
        return IndicatorInput(
            id=str(data["id"]),
            name=str(data["name"]),
            unit=str(data.get("unit") or ""),
            is_required=bool(data.get("is_required", True)),
            disaggregations=tuple(
                DisaggregationDefinition.from_dict(d) for d in data.get("disaggregations") or []
            ),
        )


@dataclass(frozen=True)
class Indicator:
    id: str
    name: str
    type: IndicatorType = IndicatorType.QUANTITATIVE
    unit: str = ""
    calc_type: CalcType = CalcType.DIRECT
    disaggregations: tuple[DisaggregationDefinition, ...] = ()
    inputs: tuple[IndicatorInput, ...] = ()

    @property
    def is_formula(self) -> bool:
        # formula 指定でも inputs が空なら direct 扱い
        return self.calc_type is CalcType.FORMULA and len(self.inputs) > 0

    @property
    def is_qualitative(self) -> bool:
        return self.type is IndicatorType.QUALITATIVE or self.unit.strip().lower() == "text"

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Indicator:
        return Indicator(
            id=str(data["id"]),
            name=str(data["name"]),
            type=IndicatorType(data.get("type", IndicatorType.QUANTITATIVE.value)),
            unit=str(data.get("unit") or ""),
            calc_type=CalcType(data.get("calc_type", CalcType.DIRECT.value)),
            disaggregations=tuple(
                DisaggregationDefinition.from_dict(d) for d in data.get("disaggregations") or []
            ),
            inputs=tuple(IndicatorInput.from_dict(i) for i in data.get("inputs") or []),
        )


@dataclass(frozen=True)
class Period:
    """Reporting period of one indicator."""
    id: str
    period_key: str
    indicator_id: str
    start_date: str | None = None
    end_date: str | None = None
    due_date: str | None = None

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Period:
        return Period(
            id=str(data["id"]),
            period_key=str(data["period_key"]),
            indicator_id=str(data["indicator_id"]),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            due_date=data.get("due_date"),
        )
