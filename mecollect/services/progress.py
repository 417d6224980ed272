from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.draft import DraftRecord

"""Progress display for draft queue submission (tqdm, TTY only).

In non-TTY environments (CI, redirected output) no bar is drawn so logs stay
free of control sequences.
"""

__all__ = [
    "FlushProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class FlushProgress:
    """Callable progress hook passed to ``DraftQueue.flush``."""

    def __init__(self, total_records: int, *, description: str = "Submitting drafts") -> None:
        self.total_records = total_records
        self.description = description
        self.delivered = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="record",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, record: DraftRecord) -> None:
        self.delivered += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(last=record.idempotency_key[:8])

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> FlushProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
