"""
zipzap Configuration

Configuration dataclasses for the store and the frecency policy. Includes
load_config() for reading a JSON config file with silent fallback to
compiled defaults, and default_db_path() for the per-user database location.

Author: zipzap contributors
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """Raised when config values are out of valid range."""

    pass


def _check_range(
    errors: List[str], name: str, value, lo, hi, typ=None,
) -> None:
    """Append an error message if value is out of [lo, hi] or wrong type."""
    if typ is not None and (not isinstance(value, typ) or isinstance(value, bool)):
        expected = (typ.__name__ if isinstance(typ, type)
                    else " or ".join(t.__name__ for t in typ))
        errors.append(f"{name}: expected {expected}, got {type(value).__name__}")
        return
    if value < lo or value > hi:
        errors.append(f"{name}: {value} not in [{lo}, {hi}]")


_NUMBER = (int, float)


# Legacy z convention: < 1 hour x4, < 1 day x2, < 1 week x0.5, older x0.25
DEFAULT_RECENCY_BUCKETS: List[Tuple[int, float]] = [
    (3600, 4.0),
    (86400, 2.0),
    (604800, 0.5),
]


@dataclass
class StoreConfig:
    """SQLite store configuration."""
    db_path: Optional[str] = None
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "store.busy_timeout_ms",
                      self.busy_timeout_ms, 0, 600000, int)
        return errors


@dataclass
class ScoringConfig:
    """Frecency scoring and aging policy."""
    aging_ceiling: float = 9000.0
    age_factor: float = 0.99
    prune_epsilon: float = 0.01
    recency_buckets: List[Tuple[int, float]] = field(
        default_factory=lambda: list(DEFAULT_RECENCY_BUCKETS)
    )
    older_weight: float = 0.25

    def __post_init__(self) -> None:
        # JSON gives lists of lists, and numbers may arrive as strings.
        # Unparseable values raise ValueError, which load_config() treats
        # like any other bad file.
        self.aging_ceiling = float(self.aging_ceiling)
        self.age_factor = float(self.age_factor)
        self.prune_epsilon = float(self.prune_epsilon)
        self.older_weight = float(self.older_weight)
        self.recency_buckets = [
            (int(age), float(weight)) for age, weight in self.recency_buckets
        ]

    def validate(self) -> List[str]:
        """Return list of validation error messages (empty = valid)."""
        errors: List[str] = []
        _check_range(errors, "scoring.aging_ceiling",
                      self.aging_ceiling, 1.0, math.inf, _NUMBER)
        _check_range(errors, "scoring.age_factor",
                      self.age_factor, 0.0, 1.0, _NUMBER)
        if self.age_factor in (0.0, 1.0):
            errors.append(f"scoring.age_factor: {self.age_factor} not in (0, 1)")
        _check_range(errors, "scoring.prune_epsilon",
                      self.prune_epsilon, 0.0, 1.0, _NUMBER)
        _check_range(errors, "scoring.older_weight",
                      self.older_weight, 0.0, math.inf, _NUMBER)
        if self.older_weight == 0.0:
            errors.append(f"scoring.older_weight: {self.older_weight} must be > 0")

        prev_age, prev_weight = 0, math.inf
        for age, weight in self.recency_buckets:
            if age <= prev_age:
                errors.append(
                    f"scoring.recency_buckets: boundary {age} not above {prev_age}"
                )
            if weight <= 0 or weight > prev_weight:
                errors.append(
                    f"scoring.recency_buckets: weight {weight} must be > 0 "
                    f"and not above {prev_weight}"
                )
            prev_age, prev_weight = age, weight
        if (self.recency_buckets and isinstance(self.older_weight, _NUMBER)
                and self.older_weight > prev_weight):
            errors.append(
                f"scoring.older_weight: {self.older_weight} above last bucket "
                f"weight {prev_weight}"
            )
        return errors


@dataclass
class ZipzapConfig:
    """Top-level zipzap configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> ZipzapConfig:
        """Build config from a nested dict (e.g. JSON)."""
        kwargs: Dict[str, Any] = {}
        if "store" in d:
            kwargs["store"] = StoreConfig(**d["store"])
        if "scoring" in d:
            kwargs["scoring"] = ScoringConfig(**d["scoring"])
        return cls(**kwargs)

    def validate(self) -> List[str]:
        """Validate all config sections. Returns list of error messages."""
        errors: List[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.scoring.validate())
        return errors


def load_config(
    path: Optional[str] = None, *, strict: bool = False,
) -> ZipzapConfig:
    """Load config from a JSON file. Returns defaults if file missing/invalid.

    Args:
        path: Path to config.json. If None, returns compiled defaults.
        strict: If True, raise ValidationError on invalid config values.

    Returns:
        ZipzapConfig with values from file or defaults.

    Raises:
        ValidationError: If strict=True and config values are out of range.
    """
    if path is None:
        cfg = ZipzapConfig()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            cfg = ZipzapConfig.from_dict(data)
        except (FileNotFoundError, json.JSONDecodeError, TypeError, KeyError,
                ValueError):
            cfg = ZipzapConfig()

    if strict:
        errors = cfg.validate()
        if errors:
            raise ValidationError(
                f"Config validation failed: {'; '.join(errors)}"
            )

    return cfg


# ---------------------------------------------------------------------------
# Default locations (XDG base directories)
# ---------------------------------------------------------------------------


def _xdg_dir(env_name: str, fallback: str) -> str:
    base = os.environ.get(env_name)
    if not base:
        base = os.path.join(os.path.expanduser("~"), fallback)
    return os.path.join(base, "zipzap")


def default_db_path() -> str:
    """Per-user database: $XDG_DATA_HOME/zipzap/db.sqlite."""
    return os.path.join(_xdg_dir("XDG_DATA_HOME", ".local/share"), "db.sqlite")


def default_config_path() -> str:
    """Per-user config file: $XDG_CONFIG_HOME/zipzap/config.json."""
    return os.path.join(_xdg_dir("XDG_CONFIG_HOME", ".config"), "config.json")
