from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from ..models.disaggregation import DisaggregationDefinition, Indicator, active_definitions
from ..models.draft import DraftRecord, PublicForm

"""Validation of single records before they are queued or submitted.

Functions return a user-facing message for the first problem found, or None
when the record is acceptable.
"""

__all__ = [
    "validate_draft_record",
    "validate_submission_value",
]


def _is_non_negative_number(raw: str | None) -> bool:
    if raw is None or not str(raw).strip():
        return False
    try:
        number = float(str(raw).strip().replace(",", ""))
    except ValueError:
        return False
    return math.isfinite(number) and number >= 0


def _missing_selection(
    definitions: Iterable[DisaggregationDefinition], selected: Sequence[str]
) -> DisaggregationDefinition | None:
    chosen = set(selected)
    for definition in active_definitions(definitions):
        hits = [v for v in definition.values if v.id in chosen]
        if len(hits) != 1:
            return definition
    return None


def validate_submission_value(
    indicator: Indicator | None, value_number: str | None, value_text: str | None
) -> str | None:
    if not (value_number or "").strip() and not (value_text or "").strip():
        return "Please enter a value"
    if indicator is not None and not indicator.is_qualitative:
        if not _is_non_negative_number(value_number):
            return "Please enter a valid numeric value"
    return None


def validate_draft_record(form: PublicForm, record: DraftRecord) -> str | None:
    respondent = record.respondent
    if form.require_name and not respondent.name.strip():
        return "Please enter your name"
    if form.require_email and not respondent.email.strip():
        return "Please enter your email"
    if form.require_phone and not respondent.phone.strip():
        return "Please enter your phone number"

    indicator = form.indicator
    if indicator.is_formula:
        given = {iv.input_id: iv for iv in record.input_values}
        for inp in indicator.inputs:
            entry = given.get(inp.id)
            if entry is None or not entry.value.strip():
                if inp.is_required:
                    return f"Please enter a value for {inp.name}"
                continue
            if not _is_non_negative_number(entry.value):
                return f"Please enter a valid numeric value for {inp.name}"
            missing = _missing_selection(inp.disaggregations, entry.disaggregation_value_ids)
            if missing is not None:
                return f"Please select your {missing.name} for {inp.name}"
        return None

    if indicator.is_qualitative:
        if not (record.value_text or "").strip():
            return "Please enter a response"
    else:
        if not (record.value_number or "").strip():
            return "Please enter a value"
        if not _is_non_negative_number(record.value_number):
            return "Please enter a valid numeric value"

    missing = _missing_selection(indicator.disaggregations, record.disaggregation_value_ids)
    if missing is not None:
        return f"Please select your {missing.name}"
    return None
