from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from ..grid.layout import DirectLayout, FormulaLayout, GridLayout
from ..models.disaggregation import (
    CalcType,
    DisaggregationDefinition,
    DisaggregationValue,
    Indicator,
    IndicatorInput,
    IndicatorType,
    Period,
)
from .format import FORMAT_VERSION, RESERVED_HEADERS, cell_text

"""Hidden ``_meta`` sheet codec.

The metadata sheet makes an exported workbook self-describing: it names the
indicator and period it belongs to and records the ID <-> label mapping of
every disaggregation value and input, so an import can rebuild canonical
keys from labels alone.

Row formats (column A is the row kind):
    [key, value]                                   scalar entries
    [dimension, def_id, def_name, header_text]
    [dimensionValue, def_id, value_id, label, sort_order]
    [input, input_id, input_name, unit, required]
    [inputDimension, input_id, def_id]
"""

__all__ = [
    "WorkbookMetadata",
    "MetadataError",
    "build_metadata_rows",
    "dimension_headers",
    "parse_metadata",
]

DIMENSION = "dimension"
DIMENSION_VALUE = "dimensionValue"
INPUT = "input"
INPUT_DIMENSION = "inputDimension"


class MetadataError(Exception):
    """Raised when the metadata sheet lacks the indicator/period identity."""


def dimension_headers(definitions: Sequence[DisaggregationDefinition]) -> dict[str, str]:
    """Header text per definition ID, unique case-insensitively.

    Names that clash with another dimension or a reserved column get the
    definition ID appended.
    """
    headers: dict[str, str] = {}
    used: set[str] = set(RESERVED_HEADERS)
    for definition in definitions:
        text = definition.name.strip()
        if text.lower() in used:
            text = f"{text} [{definition.id}]"
        used.add(text.lower())
        headers[definition.id] = text
    return headers


def build_metadata_rows(indicator: Indicator, period: Period, layout: GridLayout) -> list[list[str]]:
    dims = layout.dimensions()
    headers = dimension_headers(dims)
    calc_type = CalcType.FORMULA if isinstance(layout, FormulaLayout) else CalcType.DIRECT
    rows: list[list[str]] = [
        ["formatVersion", FORMAT_VERSION],
        ["indicatorId", indicator.id],
        ["indicatorName", indicator.name],
        ["periodId", period.id],
        ["periodKey", period.period_key],
        ["calcType", calc_type.value],
        ["indicatorType", indicator.type.value],
        ["unit", indicator.unit],
        ["disaggregationCount", str(len(dims))],
    ]
    for definition in dims:
        rows.append([DIMENSION, definition.id, definition.name, headers[definition.id]])
    for definition in dims:
        for value in definition.sorted_values():
            rows.append(
                [DIMENSION_VALUE, definition.id, value.id, value.value_label, str(value.sort_order)]
            )
    if isinstance(layout, FormulaLayout):
        for inp in layout.inputs:
            rows.append([INPUT, inp.id, inp.name, inp.unit, "true" if inp.is_required else "false"])
            for definition in layout.definitions_for(inp.id):
                rows.append([INPUT_DIMENSION, inp.id, definition.id])
    return rows


@dataclass
class WorkbookMetadata:
    indicator_id: str
    period_id: str
    indicator_name: str = ""
    period_key: str = ""
    calc_type: CalcType = CalcType.DIRECT
    indicator_type: IndicatorType = IndicatorType.QUANTITATIVE
    unit: str = ""
    format_version: str = ""
    definitions: dict[str, DisaggregationDefinition] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)  # def_id -> ヘッダ文字列
    inputs: list[IndicatorInput] = field(default_factory=list)

    def to_indicator(self) -> Indicator:
        """Indicator as it was at export time, rebuilt purely from the metadata."""
        if self.calc_type is CalcType.FORMULA:
            return Indicator(
                id=self.indicator_id,
                name=self.indicator_name,
                type=self.indicator_type,
                unit=self.unit,
                calc_type=CalcType.FORMULA,
                inputs=tuple(self.inputs),
            )
        return Indicator(
            id=self.indicator_id,
            name=self.indicator_name,
            type=self.indicator_type,
            unit=self.unit,
            disaggregations=tuple(self.definitions.values()),
        )

    def layout(self) -> GridLayout:
        indicator = self.to_indicator()
        if indicator.is_formula:
            return FormulaLayout(indicator)
        return DirectLayout(indicator)


def _enum_or_default(enum_cls: Any, raw: str, default: Any) -> Any:
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def parse_metadata(df: pd.DataFrame) -> WorkbookMetadata:
    """Parse a ``_meta`` sheet read with ``header=None``."""
    scalars: dict[str, str] = {}
    dim_rows: list[list[str]] = []
    value_rows: list[list[str]] = []
    input_rows: list[list[str]] = []
    input_dim_rows: list[list[str]] = []

    for raw in df.itertuples(index=False):
        cells = [cell_text(v).strip() for v in raw]
        if not cells or not cells[0]:
            continue
        kind = cells[0]
        # 列数不足は空文字で補完
        cells += [""] * (5 - len(cells))
        if kind == DIMENSION:
            dim_rows.append(cells)
        elif kind == DIMENSION_VALUE:
            value_rows.append(cells)
        elif kind == INPUT:
            input_rows.append(cells)
        elif kind == INPUT_DIMENSION:
            input_dim_rows.append(cells)
        else:
            scalars[kind] = cells[1]

    indicator_id = scalars.get("indicatorId", "")
    period_id = scalars.get("periodId", "")
    if not indicator_id or not period_id:
        raise MetadataError("metadata sheet lacks indicator or period information")

    values_by_def: dict[str, list[DisaggregationValue]] = {}
    for _, def_id, value_id, label, sort_order in (r[:5] for r in value_rows):
        try:
            order = int(float(sort_order)) if sort_order else 0
        except ValueError:
            order = 0
        values_by_def.setdefault(def_id, []).append(
            DisaggregationValue(id=value_id, value_label=label, sort_order=order, definition_id=def_id)
        )

    definitions: dict[str, DisaggregationDefinition] = {}
    headers: dict[str, str] = {}
    for _, def_id, name, header, *_ in dim_rows:
        definitions[def_id] = DisaggregationDefinition(
            id=def_id, name=name, values=tuple(values_by_def.get(def_id, []))
        )
        headers[def_id] = header or name

    dims_by_input: dict[str, list[str]] = {}
    for _, input_id, def_id, *_ in input_dim_rows:
        dims_by_input.setdefault(input_id, []).append(def_id)

    inputs: list[IndicatorInput] = []
    for _, input_id, name, unit, required in (r[:5] for r in input_rows):
        inputs.append(
            IndicatorInput(
                id=input_id,
                name=name,
                unit=unit,
                is_required=required.lower() != "false",
                disaggregations=tuple(
                    definitions[d] for d in dims_by_input.get(input_id, []) if d in definitions
                ),
            )
        )

    return WorkbookMetadata(
        indicator_id=indicator_id,
        period_id=period_id,
        indicator_name=scalars.get("indicatorName", ""),
        period_key=scalars.get("periodKey", ""),
        calc_type=_enum_or_default(CalcType, scalars.get("calcType", ""), CalcType.DIRECT),
        indicator_type=_enum_or_default(
            IndicatorType, scalars.get("indicatorType", ""), IndicatorType.QUANTITATIVE
        ),
        unit=scalars.get("unit", ""),
        format_version=scalars.get("formatVersion", ""),
        definitions=definitions,
        headers=headers,
        inputs=inputs,
    )
