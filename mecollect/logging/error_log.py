from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Audit log of workbook rows the importer dropped.

An import run collects one ErrorRecord per dropped row and writes them
together when the run ends, as JSON Lines in
``<logs_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC). A run that dropped nothing
leaves no file behind, so the presence of a log file alone tells an
operator that a workbook needs a second look.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """Dropped-row records of one import run."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR

    @property
    def file_path(self) -> Path:
        # 初回参照時にファイル名を確定 (ディレクトリもここで作る)
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def counts(self) -> dict[str, int]:
        """Buffered records per error_type, most frequent first."""
        return dict(Counter(r.error_type for r in self._records).most_common())

    def flush(self) -> Path | None:
        """Append buffered records to the run's log file and clear the buffer.

        Returns the file path, or None when no row was dropped.
        """
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
