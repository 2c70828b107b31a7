"""
Core operations for shell-hook and CLI callers.

Public API:
    record_visit(db_path, path) -> None
    find_path(db_path, fragments, exclude=None) -> Optional[str]
    import_legacy(db_path, source) -> ImportResult   (see legacy_import)

Each call opens the store, runs one operation, and closes it. Storage
failures propagate as StorageError; suppressing them for background
invocations is the caller's decision.

Author: zipzap contributors
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from zipzap.config import ZipzapConfig
from zipzap.legacy_import import ImportResult, import_legacy
from zipzap.matcher import rank_candidates, resolve
from zipzap.store import PathStore
from zipzap.types import Entry

logger = logging.getLogger(__name__)

__all__ = [
    "record_visit",
    "find_candidates",
    "find_path",
    "import_legacy",
    "ImportResult",
]


def _open_store(db_path: str, config: Optional[ZipzapConfig]) -> PathStore:
    cfg = config or ZipzapConfig()
    return PathStore.from_config(db_path, cfg.store, cfg.scoring)


def record_visit(
    db_path: str,
    path: str,
    *,
    now: Optional[int] = None,
    config: Optional[ZipzapConfig] = None,
) -> None:
    """Record one visit to an absolute, canonical directory path.

    Raises:
        StorageError: If the database cannot be opened or written.
    """
    with _open_store(db_path, config) as store:
        store.upsert(path, now=now)
    logger.debug(f"visit recorded: {path}")


def find_candidates(
    db_path: str,
    fragments: Sequence[str],
    *,
    exclude: Optional[str] = None,
    now: Optional[int] = None,
    config: Optional[ZipzapConfig] = None,
) -> List[Tuple[float, Entry]]:
    """Every matching entry with its score, best first."""
    cfg = config or ZipzapConfig()
    with _open_store(db_path, cfg) as store:
        entries = store.all_entries()
    return rank_candidates(entries, fragments, exclude, now, cfg.scoring)


def find_path(
    db_path: str,
    fragments: Sequence[str],
    *,
    exclude: Optional[str] = None,
    now: Optional[int] = None,
    config: Optional[ZipzapConfig] = None,
) -> Optional[str]:
    """Resolve query fragments to the best path, or None for no match.

    Raises:
        ValueError: If fragments is empty or contains an empty string.
        StorageError: If the database cannot be opened or read.
    """
    cfg = config or ZipzapConfig()
    with _open_store(db_path, cfg) as store:
        entries = store.all_entries()
    best = resolve(entries, fragments, exclude, now, cfg.scoring)
    if best is None:
        logger.debug(f"no match for {list(fragments)!r}")
    return best
