from __future__ import annotations

from collections.abc import Sequence

from ..models.disaggregation import DisaggregationValue

"""Storage key codecs for entry grid cells.

Keys are built from value IDs, never labels, so relabelling a value does not
orphan stored cells and equal labels in different dimensions cannot collide.
"""

__all__ = [
    "KEY_DELIMITER",
    "TOTAL_KEY",
    "INPUT_DELIMITER",
    "combination_key",
    "input_combination_key",
]

KEY_DELIMITER = "|"
TOTAL_KEY = "total"
INPUT_DELIMITER = "::"


def combination_key(combination: Sequence[DisaggregationValue]) -> str:
    if not combination:
        return TOTAL_KEY
    return KEY_DELIMITER.join(v.id for v in combination)


def input_combination_key(input_id: str, combination: Sequence[DisaggregationValue]) -> str:
    return f"{input_id}{INPUT_DELIMITER}{combination_key(combination)}"
