"""
Legacy Import — merge a ``z`` data file into the path index

The legacy format is one record per line: ``path|rank|time``. Lines are
parsed lazily into LegacyRecord or MalformedRecord; malformed lines are
reported and skipped, every well-formed record is merged.

Merge policy: per path, the record with the newer ``time`` wins, so a
second import of the same file changes nothing.

stdout purity: progress and per-line problems go to the ``log`` callable
(stderr by default).

Author: zipzap contributors
"""

from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, IO, Iterable, Iterator, Optional

from zipzap.config import ZipzapConfig
from zipzap.types import LegacyRecord, MalformedRecord, ParseResult, normalize_path

FIELD_DELIMITER = "|"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class ImportResult:
    """Counts from an import operation."""

    total_lines: int = 0
    imported: int = 0
    merged: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_lines": self.total_lines,
            "imported": self.imported,
            "merged": self.merged,
            "errors": self.errors,
        }


# ---------------------------------------------------------------------------
# Default log
# ---------------------------------------------------------------------------


def _default_log(msg: str) -> None:
    """Log to stderr."""
    print(msg, file=sys.stderr)


def default_legacy_path() -> str:
    """Data file of the legacy tool: $_Z_DATA, else ~/.z."""
    return os.environ.get("_Z_DATA") or os.path.join(os.path.expanduser("~"), ".z")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_line(line: str, line_no: int = 0) -> ParseResult:
    """Parse one ``path|rank|time`` line.

    The line is split from the right so a ``|`` inside the path survives.
    """
    text = line.rstrip("\r\n")
    parts = text.rsplit(FIELD_DELIMITER, 2)
    if len(parts) != 3:
        return MalformedRecord(line_no, text, "expected path|rank|time")
    raw_path, raw_rank, raw_time = parts

    path = normalize_path(raw_path.strip())
    if not path:
        return MalformedRecord(line_no, text, "empty path")
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        # Undecodable bytes arrive as lone surrogates (surrogateescape)
        return MalformedRecord(line_no, text, "path is not valid UTF-8")

    try:
        rank = float(raw_rank)
    except ValueError:
        return MalformedRecord(line_no, text, f"rank is not a number: {raw_rank!r}")
    if not math.isfinite(rank) or rank < 0:
        return MalformedRecord(line_no, text, f"rank out of range: {raw_rank!r}")

    try:
        last_access = int(raw_time.strip())
    except ValueError:
        return MalformedRecord(line_no, text, f"time is not an integer: {raw_time!r}")

    return LegacyRecord(path=path, rank=rank, last_access=last_access, line_no=line_no)


def parse_lines(lines: Iterable[str]) -> Iterator[ParseResult]:
    """Lazily parse lines, skipping blank ones. Line numbers are 1-based."""
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        yield parse_line(line, line_no)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def import_legacy(
    db_path: str,
    source: IO[str] | str,
    *,
    dry_run: bool = False,
    config: Optional[ZipzapConfig] = None,
    log: Callable[[str], None] = _default_log,
) -> ImportResult:
    """Merge legacy ``z`` records into the path index.

    Args:
        db_path: Path to the SQLite database.
        source: File path (str) or readable text stream. Never written.
        dry_run: Parse and count without writing.
        config: Store settings (default: compiled defaults).
        log: Callable for progress messages (default: stderr).

    Returns:
        ImportResult with counts.

    Raises:
        OSError: If the source file cannot be opened.
        StorageError: If the database cannot be opened or written.
    """
    from zipzap.store import PathStore

    result = ImportResult()
    records = []

    # Open source
    if isinstance(source, str):
        fh = open(source, "r", encoding="utf-8", errors="surrogateescape")
        should_close_fh = True
    else:
        fh = source
        should_close_fh = False

    try:
        for parsed in parse_lines(fh):
            result.total_lines += 1
            if isinstance(parsed, MalformedRecord):
                log(f"[import] Skipping line {parsed.line_no}: {parsed.reason}")
                result.errors += 1
                continue
            records.append(parsed.to_entry())
            result.imported += 1
    finally:
        if should_close_fh:
            fh.close()

    if not dry_run and records:
        cfg = config or ZipzapConfig()
        with PathStore.from_config(db_path, cfg.store, cfg.scoring) as store:
            result.merged = store.merge(records)

    label = " (dry run)" if dry_run else ""
    log(
        f"[import]{label} {result.imported} imported, "
        f"{result.merged} merged, "
        f"{result.errors} error(s)"
    )
    return result
