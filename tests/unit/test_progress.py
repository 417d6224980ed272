from __future__ import annotations

from unittest.mock import patch

from mecollect.models.draft import DraftRecord, Respondent
from mecollect.services.progress import FlushProgress, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True
    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


def test_progress_with_tty_updates_bar():
    with patch('mecollect.services.progress.is_tty_enabled', return_value=True), \
         patch('mecollect.services.progress.tqdm') as mock_tqdm:
        with FlushProgress(3) as progress:
            progress(DraftRecord.create(Respondent()))
        mock_tqdm.assert_called_once_with(
            total=3, desc="Submitting drafts", unit="record", disable=False,
            leave=True, position=0, ncols=80, ascii=True,
        )
        bar = mock_tqdm.return_value
        bar.update.assert_called_once_with(1)
        bar.close.assert_called_once()
        assert progress.delivered == 1


def test_progress_without_tty_counts_only():
    with patch('mecollect.services.progress.is_tty_enabled', return_value=False), \
         patch('mecollect.services.progress.tqdm') as mock_tqdm:
        progress = FlushProgress(2)
        progress(DraftRecord.create(Respondent()))
        progress.close()
        mock_tqdm.assert_not_called()
        assert progress.pbar is None
        assert progress.delivered == 1
