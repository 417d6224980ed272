from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from ..models.draft import DraftRecord, PublicForm
from ..store.backend import BackendStore, BackendStoreError
from ..store.cache import ClientCache

"""Offline draft queue for public form responses.

Records are queued locally (persisted as one JSON blob in the client cache,
keyed by the form's share token) and later flushed to the backend one at a
time, in order. Each record is dropped from the queue as soon as the backend
acknowledges it, so a flush that stalls halfway leaves exactly the records
that were not delivered. Every record carries an idempotency key; resending a
record after an unknown outcome is safe when the backend deduplicates on it.

An empty queue is never stored: the cache key is removed instead.
"""

__all__ = [
    "QueueState",
    "DraftReview",
    "FlushResult",
    "DraftQueueError",
    "DraftFlushError",
    "DraftQueue",
    "CACHE_KEY_PREFIX",
]

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "draft-queue:"


class QueueState(str, Enum):
    EMPTY = "empty"
    HAS_PENDING = "has_pending"
    FLUSHING = "flushing"
    HAS_PENDING_PARTIAL = "has_pending_partial"


class DraftQueueError(Exception):
    """Operation not permitted in the queue's current state."""


class DraftFlushError(Exception):
    """A flush stopped at a record the backend did not accept."""

    def __init__(self, submitted: int, remaining: int, reason: str) -> None:
        total = submitted + remaining
        super().__init__(f"Submission stopped after {submitted} of {total} records: {reason}")
        self.submitted = submitted
        self.remaining = remaining
        self.reason = reason


@dataclass(frozen=True)
class DraftReview:
    """Human-readable rendering of a record, shown before it is queued."""
    share_token: str
    record: DraftRecord
    lines: tuple[str, ...]

    def render(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class FlushResult:
    submitted: int
    idempotency_keys: tuple[str, ...]


def _label_lookup(form: PublicForm | None) -> Callable[[str], str]:
    if form is None:
        return lambda value_id: value_id
    labels: dict[str, str] = {}
    definitions = list(form.indicator.disaggregations)
    for inp in form.indicator.inputs:
        definitions.extend(inp.disaggregations)
    for definition in definitions:
        for value in definition.values:
            labels[value.id] = f"{definition.name}: {value.value_label}"
    return lambda value_id: labels.get(value_id, value_id)


class DraftQueue:
    def __init__(self, cache: ClientCache, share_token: str) -> None:
        self.cache = cache
        self.share_token = share_token
        self._records: list[DraftRecord] = []
        self._flushing = False
        self._partial = False
        self._load()

    @property
    def cache_key(self) -> str:
        return f"{CACHE_KEY_PREFIX}{self.share_token}"

    @property
    def state(self) -> QueueState:
        if self._flushing:
            return QueueState.FLUSHING
        if not self._records:
            return QueueState.EMPTY
        if self._partial:
            return QueueState.HAS_PENDING_PARTIAL
        return QueueState.HAS_PENDING

    @property
    def records(self) -> tuple[DraftRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DraftRecord]:
        return iter(tuple(self._records))

    def _load(self) -> None:
        try:
            blob = self.cache.get(self.cache_key)
        except (OSError, ValueError) as e:
            # 読めないキャッシュ (権限・文字化け) は空キューとして扱う
            logger.warning(f"draft queue {self.share_token}: cache read failed: {e}")
            return
        if blob is None:
            return
        try:
            payload = json.loads(blob)
            self._records = [DraftRecord.from_dict(item) for item in payload]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"draft queue {self.share_token}: discarding unreadable cache entry ({e})")
            self._records = []

    def _persist(self) -> None:
        try:
            if self._records:
                blob = json.dumps([r.to_dict() for r in self._records], ensure_ascii=False)
                self.cache.set(self.cache_key, blob)
            else:
                self.cache.remove(self.cache_key)
        except OSError as e:
            # 保存失敗はリロード後に下書きが消えるだけ
            logger.warning(f"draft queue {self.share_token}: cache write failed, drafts not saved: {e}")

    def _guard(self, operation: str) -> None:
        if self._flushing:
            raise DraftQueueError(f"cannot {operation} while a submission is in progress")

    def review(self, record: DraftRecord, form: PublicForm | None = None) -> DraftReview:
        """Render ``record`` for confirmation; pass the review to ``append``."""
        self._guard("review")
        label = _label_lookup(form)
        lines: list[str] = []
        if form is not None:
            lines.append(f"Form: {form.title} ({form.period.period_key})")
        who = ", ".join(p for p in (record.respondent.name, record.respondent.email, record.respondent.phone) if p)
        lines.append(f"Respondent: {who or '(anonymous)'}")
        if record.is_formula:
            names = {inp.id: inp.name for inp in form.indicator.inputs} if form is not None else {}
            for iv in record.input_values:
                tags = ", ".join(label(v) for v in iv.disaggregation_value_ids)
                suffix = f" [{tags}]" if tags else ""
                lines.append(f"{names.get(iv.input_id, iv.input_id)}: {iv.value}{suffix}")
        else:
            value = record.value_text if record.value_text is not None else record.value_number
            lines.append(f"Value: {value if value is not None else ''}")
            for value_id in record.disaggregation_value_ids:
                lines.append(f"  {label(value_id)}")
        lines.append(f"Estimated: {'Yes' if record.is_estimated else 'No'}")
        if record.notes:
            lines.append(f"Notes: {record.notes}")
        return DraftReview(share_token=self.share_token, record=record, lines=tuple(lines))

    def append(self, review: DraftReview, *, confirmed: bool) -> None:
        """Queue a reviewed record. Requires explicit confirmation."""
        self._guard("add a draft")
        if not isinstance(review, DraftReview) or review.share_token != self.share_token:
            raise DraftQueueError("record must be reviewed on this form before it is queued")
        if not confirmed:
            raise DraftQueueError("record was not confirmed")
        self._records.append(review.record)
        self._persist()
        logger.debug(f"draft queue {self.share_token}: queued {review.record.idempotency_key}")

    def remove(self, index: int) -> DraftRecord:
        self._guard("remove a draft")
        if not 0 <= index < len(self._records):
            raise DraftQueueError(f"no draft at position {index + 1}")
        record = self._records.pop(index)
        if not self._records:
            self._partial = False
        self._persist()
        return record

    def flush(self, store: BackendStore, progress: Callable[[DraftRecord], None] | None = None) -> FlushResult:
        """Submit every queued record in order.

        Stops at the first failure and raises DraftFlushError; records
        delivered before it are already gone from the queue.
        """
        self._guard("submit")
        total = len(self._records)
        delivered: list[str] = []
        self._flushing = True
        try:
            while self._records:
                record = self._records[0]
                try:
                    store.submit_form_response(self.share_token, record)
                except BackendStoreError as e:
                    self._partial = True
                    logger.error(
                        f"draft queue {self.share_token}: stopped after {len(delivered)} of {total} records: {e}"
                    )
                    raise DraftFlushError(len(delivered), len(self._records), str(e)) from e
                self._records.pop(0)
                self._persist()
                delivered.append(record.idempotency_key)
                if progress is not None:
                    progress(record)
        finally:
            self._flushing = False
        self._partial = False
        logger.info(f"draft queue {self.share_token}: submitted {len(delivered)} record(s)")
        return FlushResult(submitted=len(delivered), idempotency_keys=tuple(delivered))
