from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .submission import ImportRow

if TYPE_CHECKING:
    from ..grid.entry_grid import EntryGrid

"""Import result models for the spreadsheet importer.

Row-level problems are outcomes, not exceptions: every non-empty data row gets
a RowOutcome so skipped rows stay visible in aggregate.
"""

__all__ = [
    "RowStatus",
    "SkipReason",
    "RowOutcome",
    "ImportResult",
]


class RowStatus(Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"


class SkipReason(Enum):
    BLANK_VALUE = "BLANK_VALUE"
    UNKNOWN_INPUT = "UNKNOWN_INPUT"
    UNRESOLVED_LABEL = "UNRESOLVED_LABEL"
    STALE_COMBINATION = "STALE_COMBINATION"
    DUPLICATE_ROW = "DUPLICATE_ROW"


@dataclass(frozen=True)
class RowOutcome:
    row_number: int  # Excel 行番号 (1-based)
    status: RowStatus
    reason: SkipReason | None = None
    detail: str = ""


@dataclass
class ImportResult:
    """Everything recovered from one workbook."""
    indicator_id: str
    period_id: str
    calc_type: str
    file_name: str
    grid: EntryGrid
    rows: list[ImportRow] = field(default_factory=list)
    column_mapping: dict[str, str | None] = field(default_factory=dict)
    outcomes: list[RowOutcome] = field(default_factory=list)
    pruned_keys: list[str] = field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is RowStatus.IMPORTED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is RowStatus.SKIPPED)

    @property
    def blank_count(self) -> int:
        return sum(1 for o in self.outcomes if o.reason is SkipReason.BLANK_VALUE)

    @property
    def unresolved_count(self) -> int:
        """Skipped rows that carried a value (labels or input did not resolve)."""
        return self.skipped_count - self.blank_count
