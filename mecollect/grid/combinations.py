from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.disaggregation import DisaggregationDefinition, DisaggregationValue

"""Combination generator.

Cartesian product of the active disaggregation definitions in odometer order:
the last definition varies fastest, the first slowest, and each definition's
values are ordered by sort_order. No definitions yields exactly one empty
combination (the total row).
"""

__all__ = [
    "Combination",
    "generate_combinations",
    "combination_count",
]

logger = logging.getLogger(__name__)

Combination = tuple[DisaggregationValue, ...]


def generate_combinations(definitions: Sequence[DisaggregationDefinition]) -> list[Combination]:
    """Return every combination of one value per definition.

    Definitions are expected to be pre-filtered (see ``active_definitions``).
    An inert definition that slips through contributes nothing to the
    combinations instead of wiping them out, and the anomaly is logged.
    """
    if not definitions:
        return [()]

    # ソートは 1 回だけ (再帰中に毎回ソートしない)
    axes: list[list[DisaggregationValue]] = []
    for definition in definitions:
        if definition.is_inert:
            logger.warning(
                f"disaggregation '{definition.name}' ({definition.id}) has no values; ignored"
            )
            continue
        axes.append(definition.sorted_values())

    result: list[Combination] = [()]
    for axis in axes:
        result = [combo + (value,) for combo in result for value in axis]
    return result


def combination_count(definitions: Sequence[DisaggregationDefinition]) -> int:
    """Number of combinations ``generate_combinations`` would return."""
    count = 1
    for definition in definitions:
        if not definition.is_inert:
            count *= len(definition.values)
    return count
