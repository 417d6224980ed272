from __future__ import annotations

from dataclasses import dataclass

"""CellValue model: one user-entered cell of an entry grid.

The raw string is kept as typed so it can be redisplayed and re-exported
unchanged; it is only converted to a number when values are allocated for
submission.
"""

__all__ = [
    "CellValue",
]


@dataclass(frozen=True)
class CellValue:
    value: str = ""
    is_estimated: bool = False
    notes: str = ""

    @property
    def is_blank(self) -> bool:
        return self.value.strip() == ""

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value, "is_estimated": self.is_estimated, "notes": self.notes}

    @staticmethod
    def from_dict(data: dict[str, object]) -> CellValue:
        return CellValue(
            value=str(data.get("value") or ""),
            is_estimated=bool(data.get("is_estimated", False)),
            notes=str(data.get("notes") or ""),
        )
