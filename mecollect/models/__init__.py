"""Domain models for the indicator data collection core.

Reference data (definitions, indicators, periods), grid cells, submission
payloads, draft records and import results.
"""

from .cell import CellValue
from .disaggregation import (
    CalcType,
    DisaggregationDefinition,
    DisaggregationValue,
    Indicator,
    IndicatorInput,
    IndicatorType,
    Period,
)
from .draft import DraftInputValue, DraftRecord, PublicForm, Respondent
from .submission import AtomicValue, ImportRow, SubmissionContext

__all__ = [
    # Reference data
    "CalcType",
    "IndicatorType",
    "DisaggregationDefinition",
    "DisaggregationValue",
    "Indicator",
    "IndicatorInput",
    "Period",
    # Grid / submission
    "CellValue",
    "AtomicValue",
    "ImportRow",
    "SubmissionContext",
    # Public form
    "DraftInputValue",
    "DraftRecord",
    "PublicForm",
    "Respondent",
]
