from __future__ import annotations

from typing import List, Sequence, Set

from domain.models import ScoredCandidate


def merge_matches(
    local_matches: Sequence[ScoredCandidate],
    remote_matches: Sequence[ScoredCandidate],
    max_suggestions: int,
) -> List[ScoredCandidate]:
    """
    Combine local and remote matches into one ranked list.

    Entries are ordered by descending score (ties keep local before remote),
    the first occurrence of each identity key wins, and at most
    `max_suggestions` entries are returned.
    """
    combined = sorted(
        [*local_matches, *remote_matches],
        key=lambda entry: entry.score,
        reverse=True,
    )
    seen: Set[str] = set()
    merged: List[ScoredCandidate] = []
    for entry in combined:
        if len(merged) >= max_suggestions:
            break
        if entry.key in seen:
            continue
        seen.add(entry.key)
        merged.append(entry)
    return merged
