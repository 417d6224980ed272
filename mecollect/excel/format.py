from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any

"""Workbook layout shared by the exporter and the importer.

Visible data sheet:
- rows 1-5: reserved branding/metadata block, row 1 col A = WORKBOOK_SIGNATURE
- row 6: header
- row 7+: data rows

Hidden sheets: ``_meta`` (self-describing metadata) and ``_lists`` (sources of
the dropdown validations).
"""

WORKBOOK_SIGNATURE = "Indicator Data Collection Workbook"
FORMAT_VERSION = "1"

RESERVED_ROWS = 5  # 先頭の固定ブロック (データには使わない)
HEADER_ROW = RESERVED_ROWS + 1  # 1-based
FIRST_DATA_ROW = HEADER_ROW + 1  # 1-based

META_SHEET_NAME = "_meta"
META_SHEET_ALIASES = ("_meta", "_metadata")
LISTS_SHEET_NAME = "_lists"

INPUT_HEADER = "Input"
VALUE_HEADER = "Value"
ESTIMATED_HEADER = "Estimated"
NOTES_HEADER = "Notes"
RESERVED_HEADERS = {INPUT_HEADER.lower(), VALUE_HEADER.lower(), ESTIMATED_HEADER.lower(), NOTES_HEADER.lower()}

YES = "Yes"
NO = "No"
TRUE_TOKENS = {"yes", "y", "true", "1"}

MAX_SHEET_TITLE = 28
_UNSAFE_TITLE_CHARS = re.compile(r"[\\/*?:\[\]]")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_TRAILING_PAREN = re.compile(r"\s*\([^()]*\)\s*$")

# Excel は有効桁 15 桁まで
_MAX_EXCEL_DIGITS = 15


def sanitize_sheet_title(name: str) -> str:
    """Visible sheet title: unsafe characters replaced, at most 28 characters.

    Leading underscores are dropped because ``_``-prefixed sheets are reserved
    for hidden sheets.
    """
    title = _UNSAFE_TITLE_CHARS.sub("_", name[:MAX_SHEET_TITLE]).lstrip("_").strip()
    return title or "Data"


def export_filename(indicator_name: str, period_key: str, template: bool = False) -> str:
    stem = f"{_NON_ALNUM.sub('_', indicator_name)}_{period_key}"
    if template:
        stem += "_template"
    return f"{stem}.xlsx"


def normalize_header(text: str) -> str:
    return text.strip().lower()


def strip_unit_suffix(text: str) -> str:
    """``Value (kg)`` -> ``Value``."""
    return _TRAILING_PAREN.sub("", text)


def cell_text(value: Any) -> str:
    """Text of a cell value as read by pandas (dtype=object).

    Blank cells come back as None, NaN or ''. Integral numbers are rendered
    without a decimal part, other floats with repr so the exported string
    round-trips.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def is_blank(value: Any) -> bool:
    return cell_text(value).strip() == ""


def parse_yes_no(value: Any) -> bool:
    return cell_text(value).strip().lower() in TRUE_TOKENS


def to_cell_value(raw: str) -> int | float | str:
    """Value to write for a raw grid string.

    Canonical integers and non-integral floats become numeric cells, anything
    else stays text, so reading the cell back yields the same string.
    """
    digits = raw.lstrip("-").replace(".", "", 1).lstrip("0")
    if len(digits) > _MAX_EXCEL_DIGITS:
        return raw
    try:
        as_int = int(raw)
    except ValueError:
        pass
    else:
        return as_int if str(as_int) == raw else raw
    try:
        as_float = float(raw)
    except ValueError:
        return raw
    if not math.isfinite(as_float) or as_float.is_integer():
        return raw
    return as_float if repr(as_float) == raw else raw
