"""
Directory Index Data Model

Defines the tracked-directory entry and the two outcomes of parsing one
line of a legacy ``z`` data file.

Author: zipzap contributors
"""

from __future__ import annotations

import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Union


def _now_epoch() -> int:
    """Current time as integer seconds since the Unix epoch."""
    return int(time.time())


def normalize_path(path: str) -> str:
    """Strip trailing separators. The filesystem root stays ``/``."""
    stripped = path.rstrip("/")
    if not stripped and path.startswith("/"):
        return "/"
    return stripped


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


@dataclass
class Entry:
    """One tracked directory and its usage metadata."""

    path: str
    rank: float = 1.0
    last_access: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Entry:
        return cls(
            path=d["path"],
            rank=float(d.get("rank", 1.0)),
            last_access=int(d.get("last_access", 0)),
        )

    @property
    def basename(self) -> str:
        return self.path.rsplit("/", 1)[-1]


# ---------------------------------------------------------------------------
# Legacy parse results
# ---------------------------------------------------------------------------


@dataclass
class LegacyRecord:
    """A well-formed ``path|rank|time`` line."""

    path: str
    rank: float
    last_access: int
    line_no: int = 0

    def to_entry(self) -> Entry:
        return Entry(path=self.path, rank=self.rank, last_access=self.last_access)


@dataclass
class MalformedRecord:
    """A line that could not be parsed, kept for reporting."""

    line_no: int
    line: str
    reason: str


ParseResult = Union[LegacyRecord, MalformedRecord]
