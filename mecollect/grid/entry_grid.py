from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from ..models.cell import CellValue

if TYPE_CHECKING:
    from .layout import GridLayout

"""Sparse entry grid: combination key -> CellValue.

Key presence means "entered"; an absent key is "not yet entered", which is not
the same as zero. Keys must stay producible by the indicator's current layout;
``reconcile`` drops the ones that no longer are (e.g. after a disaggregation
value was deleted).
"""

__all__ = [
    "EntryGrid",
]

logger = logging.getLogger(__name__)


class EntryGrid:
    def __init__(self, cells: Mapping[str, CellValue] | None = None) -> None:
        self._cells: dict[str, CellValue] = dict(cells or {})

    def __contains__(self, key: object) -> bool:
        return key in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntryGrid):
            return NotImplemented
        return self._cells == other._cells

    def __repr__(self) -> str:
        return f"EntryGrid({len(self._cells)} cells)"

    def get(self, key: str) -> CellValue | None:
        return self._cells.get(key)

    def set(self, key: str, cell: CellValue) -> None:
        self._cells[key] = cell

    def update_field(self, key: str, **changes: Any) -> CellValue:
        """Change one or more fields of a cell, creating it when absent."""
        current = self._cells.get(key, CellValue())
        data = current.to_dict()
        data.update(changes)
        cell = CellValue.from_dict(data)
        self._cells[key] = cell
        return cell

    def remove(self, key: str) -> None:
        self._cells.pop(key, None)

    def items(self) -> list[tuple[str, CellValue]]:
        return list(self._cells.items())

    def keys(self) -> list[str]:
        return list(self._cells.keys())

    def reconcile(self, layout: GridLayout) -> list[str]:
        """Drop keys the layout can no longer produce. Returns the dropped keys."""
        valid = layout.valid_keys()
        stale = [key for key in self._cells if key not in valid]
        for key in stale:
            del self._cells[key]
        if stale:
            logger.info(f"dropped {len(stale)} stale grid key(s): {stale[:5]}")
        return stale

    def numeric_total(self) -> float:
        """Sum of all cells whose value parses as a number."""
        total = 0.0
        for cell in self._cells.values():
            try:
                number = float(cell.value)
            except ValueError:
                continue
            if math.isfinite(number):
                total += number
        return total

    def to_dict(self) -> dict[str, dict[str, object]]:
        return {key: cell.to_dict() for key, cell in self._cells.items()}

    @staticmethod
    def from_dict(data: Mapping[str, Mapping[str, object]]) -> EntryGrid:
        return EntryGrid({key: CellValue.from_dict(dict(raw)) for key, raw in data.items()})

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @staticmethod
    def from_json(text: str) -> EntryGrid:
        return EntryGrid.from_dict(json.loads(text))
