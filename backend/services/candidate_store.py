"""
In-memory caches backing local (network-free) suggestions.

Two independent, capacity-bounded structures with insertion-order eviction:
- QueryResultCache: normalized query -> prepared candidates from one lookup.
- CandidateIndex: identity key -> candidate, the pool local matches are drawn from.
"""
from __future__ import annotations

import logging
from collections import OrderedDict, deque
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from domain.models import Candidate, ScoredCandidate
from services.autocomplete_scoring import CandidateScorer

logger = logging.getLogger(__name__)


class QueryResultCache:
    def __init__(self, capacity: int = 24):
        self.capacity = max(int(capacity), 0)
        self._entries: "OrderedDict[str, Tuple[Candidate, ...]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, normalized_query: str) -> bool:
        return normalized_query in self._entries

    def get(self, normalized_query: str) -> Optional[Tuple[Candidate, ...]]:
        return self._entries.get(normalized_query)

    def put(self, normalized_query: str, candidates: Sequence[Candidate]) -> None:
        """Store the candidates for a query, evicting the oldest entry when full.

        Replacing an existing key keeps its original position.
        """
        if not normalized_query or self.capacity == 0:
            return
        if normalized_query not in self._entries and len(self._entries) >= self.capacity:
            oldest, _ = self._entries.popitem(last=False)
            logger.debug("Query cache full (%d); evicted %r", self.capacity, oldest)
        self._entries[normalized_query] = tuple(candidates)

    def keys(self) -> List[str]:
        return list(self._entries)


class CandidateIndex:
    def __init__(self, capacity: int = 240):
        self.capacity = max(int(capacity), 0)
        self._by_key: Dict[str, Candidate] = {}
        self._order: Deque[str] = deque()

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key

    def upsert_all(self, candidates: Iterable[Candidate]) -> int:
        """Insert candidates not seen before; returns how many were added.

        Existing keys are left untouched (first seen wins). Afterwards the
        oldest entries are dropped one at a time until within capacity.
        """
        added = 0
        for candidate in candidates:
            if candidate.key in self._by_key:
                continue
            self._by_key[candidate.key] = candidate
            self._order.append(candidate.key)
            added += 1

        while len(self._order) > self.capacity:
            oldest = self._order.popleft()
            self._by_key.pop(oldest, None)
        return added

    def candidates(self) -> List[Candidate]:
        """Indexed candidates, oldest first."""
        return [self._by_key[key] for key in self._order if key in self._by_key]

    def keys(self) -> List[str]:
        return list(self._order)


class CandidateStore:
    """Query-result cache plus identity index, scored through one scorer."""

    def __init__(
        self,
        scorer: CandidateScorer,
        *,
        cache_limit: int = 24,
        max_local_entries: int = 240,
        max_suggestions: int = 6,
    ):
        self.scorer = scorer
        self.results = QueryResultCache(cache_limit)
        self.index = CandidateIndex(max_local_entries)
        self.max_suggestions = max_suggestions

    def remember(self, normalized_query: str, candidates: Sequence[Candidate]) -> None:
        """Record a completed remote lookup in both caches."""
        self.results.put(normalized_query, candidates)
        added = self.index.upsert_all(candidates)
        logger.debug(
            "Cached %d candidates for %r (%d new, index size %d)",
            len(candidates),
            normalized_query,
            added,
            len(self.index),
        )

    def local_matches(
        self,
        query_tokens: Sequence[str],
        normalized_query: str,
        raw_query: str,
    ) -> List[ScoredCandidate]:
        if not len(self.index):
            return []
        return self.scorer.rank(
            self.index.candidates(),
            query_tokens,
            normalized_query,
            raw_query,
            self.max_suggestions,
        )
