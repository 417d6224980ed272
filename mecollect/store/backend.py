from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Sequence
from typing import Any, Protocol

from ..models.draft import DraftRecord
from ..models.submission import AtomicValue, SubmissionContext
from .batch_insert import BatchInsertError, batch_insert

"""Backend store: where submissions and public form responses end up.

``BackendStore`` is the interface the core depends on. Responses are plain
success/failure: a failure raises BackendStoreError.

``PostgresBackendStore`` writes straight to PostgreSQL through a psycopg2
cursor. With ``cursor=None`` it runs in mock mode: nothing is written, the
calls are logged and counted (used by the CLI with DISABLE_DB_CONNECT=1).
"""

__all__ = [
    "BackendStore",
    "BackendStoreError",
    "PostgresBackendStore",
]

logger = logging.getLogger(__name__)

SUBMISSION_VALUE_COLUMNS = [
    "submission_id",
    "indicator_id",
    "input_id",
    "disaggregation_value_id",
    "value_number",
    "value_text",
    "is_estimated",
    "notes",
]

FORM_RESPONSE_COLUMNS = [
    "share_token",
    "idempotency_key",
    "respondent_name",
    "respondent_email",
    "respondent_phone",
    "payload",
    "created_at",
]


class BackendStoreError(Exception):
    pass


class BackendStore(Protocol):
    def submit_values(self, context: SubmissionContext, values: Sequence[AtomicValue]) -> str:
        """Create a submission holding ``values``; returns the submission ID."""
        ...

    def submit_form_response(self, share_token: str, record: DraftRecord) -> None:
        """Store one public form response."""
        ...


class PostgresBackendStore:
    def __init__(self, cursor: Any = None) -> None:
        self.cursor = cursor
        self.submitted_values = 0
        self.submitted_responses = 0

    @property
    def mock(self) -> bool:
        return self.cursor is None

    def _commit(self) -> None:
        conn = getattr(self.cursor, "connection", None)
        if conn is not None:
            try:
                conn.commit()
            except Exception as e:
                raise BackendStoreError(f"commit failed: {e}") from e

    def _rollback(self) -> None:
        conn = getattr(self.cursor, "connection", None)
        if conn is not None:
            try:
                conn.rollback()
            except Exception as e:  # pragma: no cover
                logger.warning(f"rollback failed: {e}")

    def submit_values(self, context: SubmissionContext, values: Sequence[AtomicValue]) -> str:
        if not context.submitted_by:
            raise BackendStoreError("submitter identity missing")
        if self.mock:
            submission_id = str(uuid.uuid4())
            logger.info(
                f"[mock] submission {submission_id}: project={context.project_id} "
                f"period={context.period_id} values={len(values)}"
            )
            self.submitted_values += len(values)
            return submission_id
        try:
            header = batch_insert(
                self.cursor,
                "submissions",
                ["project_id", "indicator_period_id", "submitted_by_id", "status"],
                [[context.project_id, context.period_id, context.submitted_by, "draft"]],
                returning="id",
            )
            submission_id = str(header.returned_values[0][0])
            batch_insert(
                self.cursor,
                "submission_values",
                SUBMISSION_VALUE_COLUMNS,
                [
                    [
                        submission_id,
                        v.indicator_id,
                        v.input_id,
                        v.disaggregation_value_id,
                        v.value_number,
                        v.value_text,
                        v.is_estimated,
                        v.notes or None,
                    ]
                    for v in values
                ],
            )
            self._commit()
        except BatchInsertError as e:
            self._rollback()
            raise BackendStoreError(f"failed to store submission: {e}") from e
        self.submitted_values += len(values)
        return submission_id

    def submit_form_response(self, share_token: str, record: DraftRecord) -> None:
        if self.mock:
            logger.info(f"[mock] form response {record.idempotency_key} for {share_token}")
            self.submitted_responses += 1
            return
        row = [
            share_token,
            record.idempotency_key,
            record.respondent.name or None,
            record.respondent.email or None,
            record.respondent.phone or None,
            json.dumps(record.to_dict(), ensure_ascii=False),
            record.created_at,
        ]
        try:
            # 同じ idempotency_key の再送は無視 (部分 flush 後の再試行)
            batch_insert(
                self.cursor,
                "public_form_responses",
                FORM_RESPONSE_COLUMNS,
                [row],
                on_conflict="(idempotency_key) DO NOTHING",
            )
            self._commit()
        except BatchInsertError as e:
            self._rollback()
            raise BackendStoreError(f"failed to store form response: {e}") from e
        self.submitted_responses += 1
