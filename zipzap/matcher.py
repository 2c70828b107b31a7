"""
Query matching — resolve ordered fragments to the best tracked directory.

An entry is a candidate when every fragment occurs in its path
(case-insensitive) and the match positions are non-decreasing in query
order, so ``pro src`` finds ``/home/me/projects/app/src`` but ``src pro``
does not.

Candidates are ranked by frecency, then:
  1. basename equal to the last fragment,
  2. shorter path,
  3. lexicographic path,
which makes the result deterministic for any fixed index and query.

Author: zipzap contributors
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from zipzap.config import ScoringConfig
from zipzap.scoring import score
from zipzap.types import Entry, _now_epoch, normalize_path


def _check_fragments(fragments: Sequence[str]) -> List[str]:
    """Casefold fragments. Raises ValueError on an empty query or fragment."""
    if not fragments:
        raise ValueError("at least one query fragment is required")
    folded = []
    for frag in fragments:
        if not frag:
            raise ValueError("query fragments must be non-empty")
        folded.append(frag.casefold())
    return folded


def match_positions(path: str, fragments: Sequence[str]) -> Optional[List[int]]:
    """Start offset of each fragment in ``path``, or None if it does not match.

    Fragments must already be casefolded. The leftmost occurrence of each
    fragment is searched from the previous fragment's start, which is the
    most permissive choice for the ordering constraint.
    """
    haystack = path.casefold()
    positions: List[int] = []
    start = 0
    for frag in fragments:
        pos = haystack.find(frag, start)
        if pos < 0:
            return None
        positions.append(pos)
        start = pos
    return positions


def rank_candidates(
    entries: Sequence[Entry],
    fragments: Sequence[str],
    exclude: Optional[str] = None,
    now: Optional[int] = None,
    policy: Optional[ScoringConfig] = None,
) -> List[Tuple[float, Entry]]:
    """All matching entries as ``(score, entry)``, best first.

    If ``exclude`` is among the matches it is dropped, unless it is the only
    match, in which case it is kept so the caller lands where it already is.
    """
    folded = _check_fragments(fragments)
    if now is None:
        now = _now_epoch()
    last = folded[-1]

    matches = [e for e in entries if match_positions(e.path, folded) is not None]
    if exclude is not None and len(matches) > 1:
        excluded = normalize_path(exclude)
        matches = [e for e in matches if e.path != excluded]

    scored = [(score(e, now, policy), e) for e in matches]
    scored.sort(
        key=lambda se: (
            -se[0],
            se[1].basename.casefold() != last,
            len(se[1].path),
            se[1].path,
        )
    )
    return scored


def resolve(
    entries: Sequence[Entry],
    fragments: Sequence[str],
    exclude: Optional[str] = None,
    now: Optional[int] = None,
    policy: Optional[ScoringConfig] = None,
) -> Optional[str]:
    """Best matching path, or None when nothing matches.

    None is the normal "stay where you are" outcome, not an error.
    """
    ranked = rank_candidates(entries, fragments, exclude, now, policy)
    if not ranked:
        return None
    return ranked[0][1].path
