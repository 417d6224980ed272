from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .disaggregation import Indicator, Period

"""Public form and draft record models.

A DraftRecord is a complete, self-contained response to a public form. It is
immutable once queued: editing means removing it and queuing a new one. Each
record gets a client-generated idempotency key at creation so the backend can
recognise a resubmission after a partial flush.
"""

__all__ = [
    "Respondent",
    "DraftInputValue",
    "DraftRecord",
    "PublicForm",
]


@dataclass(frozen=True)
class Respondent:
    name: str = ""
    email: str = ""
    phone: str = ""


@dataclass(frozen=True)
class DraftInputValue:
    """Value for one input of a formula indicator."""
    input_id: str
    value: str
    disaggregation_value_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DraftRecord:
    respondent: Respondent
    idempotency_key: str
    created_at: str  # ISO8601 UTC
    value_number: str | None = None  # 入力文字列のまま保持
    value_text: str | None = None
    disaggregation_value_ids: tuple[str, ...] = ()
    input_values: tuple[DraftInputValue, ...] = ()
    is_estimated: bool = False
    notes: str = ""

    @staticmethod
    def create(
        respondent: Respondent,
        *,
        value_number: str | None = None,
        value_text: str | None = None,
        disaggregation_value_ids: tuple[str, ...] = (),
        input_values: tuple[DraftInputValue, ...] = (),
        is_estimated: bool = False,
        notes: str = "",
    ) -> DraftRecord:
        """Create a new record with a fresh idempotency key and UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return DraftRecord(
            respondent=respondent,
            idempotency_key=str(uuid.uuid4()),
            created_at=ts,
            value_number=value_number,
            value_text=value_text,
            disaggregation_value_ids=tuple(disaggregation_value_ids),
            input_values=tuple(input_values),
            is_estimated=is_estimated,
            notes=notes,
        )

    @property
    def is_formula(self) -> bool:
        return len(self.input_values) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "respondent": {
                "name": self.respondent.name,
                "email": self.respondent.email,
                "phone": self.respondent.phone,
            },
            "idempotency_key": self.idempotency_key,
            "created_at": self.created_at,
            "value_number": self.value_number,
            "value_text": self.value_text,
            "disaggregation_value_ids": list(self.disaggregation_value_ids),
            "input_values": [
                {
                    "input_id": iv.input_id,
                    "value": iv.value,
                    "disaggregation_value_ids": list(iv.disaggregation_value_ids),
                }
                for iv in self.input_values
            ],
            "is_estimated": self.is_estimated,
            "notes": self.notes,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DraftRecord:
        resp = data.get("respondent") or {}
        return DraftRecord(
            respondent=Respondent(
                name=str(resp.get("name") or ""),
                email=str(resp.get("email") or ""),
                phone=str(resp.get("phone") or ""),
            ),
            idempotency_key=str(data["idempotency_key"]),
            created_at=str(data.get("created_at") or ""),
            value_number=data.get("value_number"),
            value_text=data.get("value_text"),
            disaggregation_value_ids=tuple(data.get("disaggregation_value_ids") or ()),
            input_values=tuple(
                DraftInputValue(
                    input_id=str(iv["input_id"]),
                    value=str(iv.get("value") or ""),
                    disaggregation_value_ids=tuple(iv.get("disaggregation_value_ids") or ()),
                )
                for iv in data.get("input_values") or []
            ),
            is_estimated=bool(data.get("is_estimated", False)),
            notes=str(data.get("notes") or ""),
        )


@dataclass(frozen=True)
class PublicForm:
    """Shareable form bound to one indicator period."""
    id: str
    share_token: str
    title: str
    indicator: Indicator
    period: Period
    require_name: bool = False
    require_email: bool = False
    require_phone: bool = False
    thank_you_message: str = "Your response has been recorded."
