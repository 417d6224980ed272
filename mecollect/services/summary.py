from __future__ import annotations

from ..models.import_result import ImportResult

"""Summary line rendering for the CLI.

Formats:
    IMPORT file={name} indicator={id} period={id} imported={n} skipped={n} blank={n} unresolved={n} pruned={n}
    FLUSH token={token} submitted={n} remaining={n}

Values containing whitespace are double-quoted so every line stays
``key=value`` tokenizable.
"""

__all__ = [
    "render_import_summary",
    "render_flush_summary",
]


def _token(value: str) -> str:
    if not value or any(ch.isspace() for ch in value) or '"' in value:
        escaped = value.replace('"', '\\"')
        return f'"{escaped}"'
    return value


def render_import_summary(result: ImportResult) -> str:
    """Render the IMPORT line for one imported workbook.

    Examples:
        >>> from mecollect.grid.entry_grid import EntryGrid
        >>> r = ImportResult("ind-1", "p-1", "direct", "data.xlsx", EntryGrid())
        >>> render_import_summary(r)
        'IMPORT file=data.xlsx indicator=ind-1 period=p-1 imported=0 skipped=0 blank=0 unresolved=0 pruned=0'
    """
    return (
        f"IMPORT file={_token(result.file_name)} "
        f"indicator={_token(result.indicator_id)} "
        f"period={_token(result.period_id)} "
        f"imported={result.imported_count} "
        f"skipped={result.skipped_count} "
        f"blank={result.blank_count} "
        f"unresolved={result.unresolved_count} "
        f"pruned={len(result.pruned_keys)}"
    )


def render_flush_summary(share_token: str, submitted: int, remaining: int) -> str:
    return f"FLUSH token={_token(share_token)} submitted={submitted} remaining={remaining}"
