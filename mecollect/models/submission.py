from __future__ import annotations

from dataclasses import asdict, dataclass

"""Submission models: atomic values, the submission context and imported rows.

AtomicValue is the unit the Backend Store accepts. ImportRow is the flat
per-row payload produced by the spreadsheet importer and kept alongside the
import history (file name and column mapping).
"""

__all__ = [
    "AtomicValue",
    "SubmissionContext",
    "ImportRow",
]


@dataclass(frozen=True)
class AtomicValue:
    """One value as stored by the backend (at most one disaggregation tag)."""
    indicator_id: str
    input_id: str | None
    disaggregation_value_id: str | None
    value_number: float | None
    value_text: str | None
    is_estimated: bool
    notes: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class SubmissionContext:
    """Who submits what. Passed explicitly, never read from ambient session state."""
    project_id: str
    period_id: str
    submitted_by: str


@dataclass(frozen=True)
class ImportRow:
    row_number: int  # Excel 行番号 (1-based)
    input_id: str | None
    value: str
    disaggregation_value_ids: tuple[str, ...]
    is_estimated: bool = False
    notes: str = ""
