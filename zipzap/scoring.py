"""
Frecency scoring and aging policy.

Pure functions over stored metadata:
- **increment**: flat +1 per visit (legacy ``z`` metric).
- **score**: ``rank * recency_weight(now - last_access)``, a step function
  that never increases with age.
- **should_age / age_factor**: the table-wide decay trigger and multiplier.

The policy constants live in ``ScoringConfig`` so they can be tuned
without touching the algorithms here.

Author: zipzap contributors
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from zipzap.config import ScoringConfig
from zipzap.types import Entry, _now_epoch

_DEFAULT_POLICY = ScoringConfig()

VISIT_INCREMENT = 1.0


def increment(current_rank: float) -> float:
    """Rank after one more visit."""
    return current_rank + VISIT_INCREMENT


def recency_weight(
    elapsed: float,
    buckets: Sequence[Tuple[int, float]] = _DEFAULT_POLICY.recency_buckets,
    older_weight: float = _DEFAULT_POLICY.older_weight,
) -> float:
    """Weight for a visit ``elapsed`` seconds ago.

    Buckets are ``(max_age_seconds, weight)`` in ascending age. A bucket
    applies while ``elapsed < max_age_seconds``, so an elapsed time exactly
    on a boundary gets the next (lower) weight. Negative elapsed times
    (clock skew between writers) count as zero.
    """
    if elapsed < 0:
        elapsed = 0
    for max_age, weight in buckets:
        if elapsed < max_age:
            return weight
    return older_weight


def score(
    entry: Entry,
    now: Optional[int] = None,
    policy: Optional[ScoringConfig] = None,
) -> float:
    """Frecency of an entry at instant ``now``."""
    policy = policy or _DEFAULT_POLICY
    if now is None:
        now = _now_epoch()
    weight = recency_weight(
        now - entry.last_access, policy.recency_buckets, policy.older_weight,
    )
    return entry.rank * weight


def should_age(total_rank: float, ceiling: float = _DEFAULT_POLICY.aging_ceiling) -> bool:
    """True once the aggregate rank exceeds the ceiling."""
    return total_rank > ceiling


def age_factor(policy: Optional[ScoringConfig] = None) -> float:
    return (policy or _DEFAULT_POLICY).age_factor
