from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .import_result import RowOutcome

"""Skipped-row record for the import audit log.

When a filled-in workbook row cannot be mapped back onto the entry grid
(a dimension label that matches no value, an input name the indicator does
not have, a combination that no longer exists, or a later row for the same
key), the row is dropped and one ErrorRecord is written for it. Rows with a
blank Value cell are not recorded: leaving a cell empty is how users say
"no data".

``error_type`` carries the SkipReason name, so the log can be grouped by
cause without parsing ``message``.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """One dropped row, serialized as a single JSON line.

    Attributes:
        timestamp: ISO8601 UTC with 'Z' suffix, time the row was dropped
        file: workbook file name as uploaded
        sheet: data sheet title (the indicator name, sanitized)
        row: Excel row number as the user sees it; -1 when not row specific
        error_type: SkipReason value, e.g. UNRESOLVED_LABEL
        message: what did not resolve, quoting the cell text
    """
    timestamp: str
    file: str
    sheet: str
    row: int  # Excel の行番号 (1-based)
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(timestamp=ts, file=file, sheet=sheet, row=row, error_type=error_type, message=message)

    @staticmethod
    def for_skipped_row(file: str, sheet: str, outcome: RowOutcome) -> ErrorRecord:
        """Record for a skipped RowOutcome of the importer."""
        reason = outcome.reason.value if outcome.reason is not None else "SKIPPED"
        return ErrorRecord.create(file, sheet, outcome.row_number, reason, outcome.detail)

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
