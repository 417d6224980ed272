from __future__ import annotations
import json
from pathlib import Path

from mecollect.logging.error_log import ErrorLogBuffer, ErrorRecord
from mecollect.models.import_result import RowOutcome, RowStatus, SkipReason


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        file="data.xlsx", sheet="Children enrolled", row=9, error_type="UNRESOLVED_LABEL",
        message="'Grade 9' is not a value of 'Grade'",
    )
    data = json.loads(rec.to_json_line())
    assert data["row"] == 9
    assert data["error_type"] == "UNRESOLVED_LABEL"
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == {"timestamp", "file", "sheet", "row", "error_type", "message"}


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("f.xlsx", "S", 7, "UNKNOWN_INPUT", "unknown input 'x'"))
    buf.append(ErrorRecord.create("f.xlsx", "S", 8, "UNRESOLVED_LABEL", "no value given"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent.name == "logs"
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    # flush 後バッファクリア
    assert len(buf) == 0


def test_empty_buffer_writes_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_record_for_skipped_row_uses_reason_name():
    outcome = RowOutcome(12, RowStatus.SKIPPED, SkipReason.STALE_COMBINATION, "combination no longer exists")
    rec = ErrorRecord.for_skipped_row("data.xlsx", "Children enrolled", outcome)
    assert (rec.row, rec.error_type, rec.message) == (12, "STALE_COMBINATION", "combination no longer exists")


def test_counts_by_error_type(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    for row, kind in [(7, "UNRESOLVED_LABEL"), (8, "DUPLICATE_ROW"), (9, "UNRESOLVED_LABEL")]:
        buf.append(ErrorRecord.create("f.xlsx", "S", row, kind, "x"))
    assert buf.counts() == {"UNRESOLVED_LABEL": 2, "DUPLICATE_ROW": 1}
    buf.flush()
    assert buf.counts() == {}
