"""
Place autocomplete engine.

Blends suggestions drawn from previously fetched places (local history) with
an on-demand remote lookup, and ranks them together. One engine instance owns
all of its state (caches, sequence counter, in-flight cancellation handle) and
serves a single logical search session.

Typical use::

    engine = AutocompleteEngine(provider, AutocompleteConfig(...))
    preview = engine.preview(text)          # on every keystroke, no network
    result = await engine.search(text, preview)
"""
from __future__ import annotations

import logging
from typing import List, Optional

from domain.models import (
    AutocompleteConfig,
    Candidate,
    PreviewResult,
    RawPlaceRecord,
    ScoredCandidate,
    SearchResult,
)
from services.autocomplete_scoring import CandidateScorer
from services.candidate_store import CandidateStore
from services.candidates import prepare_candidate
from services.merge_ranker import merge_matches
from services.request_coordinator import (
    LookupStatus,
    RemoteLookupProvider,
    RequestCoordinator,
)
from services.text_normalize import collapse_whitespace, normalize_text, tokenize

logger = logging.getLogger(__name__)


def _candidates(entries: List[ScoredCandidate]) -> List[Candidate]:
    return [entry.candidate for entry in entries]


class AutocompleteEngine:
    def __init__(
        self,
        provider: RemoteLookupProvider,
        config: Optional[AutocompleteConfig] = None,
    ):
        self.config = config or AutocompleteConfig()
        self.scorer = CandidateScorer(self.config.weights)
        self.store = CandidateStore(
            self.scorer,
            cache_limit=self.config.cache_limit,
            max_local_entries=self.config.max_local_entries,
            max_suggestions=self.config.max_suggestions,
        )
        self.coordinator = RequestCoordinator(provider, self.store.results, self.prepare)

    def prepare(self, raw: RawPlaceRecord) -> Candidate:
        return prepare_candidate(
            raw,
            reference_point=self.config.reference_point,
            containment=self.config.containment,
        )

    def preview(self, raw_query: str) -> PreviewResult:
        """Normalize a query and rank local history against it. Never touches the network."""
        query = collapse_whitespace(raw_query)
        normalized = normalize_text(query)
        tokens = tokenize(normalized)
        local_matches: List[ScoredCandidate] = []
        if len(query) >= self.config.min_query_length:
            local_matches = self.store.local_matches(tokens, normalized, query)
        return PreviewResult(
            query=query,
            normalized=normalized,
            tokens=tokens,
            local_matches=local_matches,
        )

    async def search(
        self,
        raw_query: str,
        preview: Optional[PreviewResult] = None,
    ) -> SearchResult:
        """
        Resolve suggestions for a query.

        Returns immediately when the query is too short or local history
        already fills the suggestion quota; otherwise awaits the remote lookup
        (or the cached result of an identical earlier lookup) and merges.

        A lookup cancelled by a newer search, or one that finishes after a
        newer search started, yields local-only suggestions with
        ``aborted=True``. Provider failures are re-raised.
        """
        sequence = self.coordinator.begin()
        preview = preview or self.preview(raw_query)
        local_matches = preview.local_matches
        max_suggestions = self.config.max_suggestions

        if len(preview.query) < self.config.min_query_length:
            return SearchResult()

        if len(local_matches) >= max_suggestions:
            return SearchResult(
                suggestions=_candidates(local_matches[:max_suggestions]),
                local_candidates=_candidates(local_matches),
                used_remote=False,
            )

        outcome = await self.coordinator.lookup(preview.query, preview.normalized)

        if not self.coordinator.is_current(sequence) or outcome.status is LookupStatus.CANCELLED:
            logger.debug(
                "Discarding %s lookup for %r (sequence %d, current %d)",
                outcome.status.value,
                preview.query,
                sequence,
                self.coordinator.sequence,
            )
            return SearchResult(
                suggestions=_candidates(local_matches),
                local_candidates=_candidates(local_matches),
                used_remote=False,
                aborted=True,
            )

        if outcome.status is LookupStatus.FAILED:
            raise outcome.error or RuntimeError("Remote lookup failed")

        # providers may return more than they were sized for
        remote_candidates = list(outcome.candidates[: self.config.remote_limit])
        if not outcome.from_cache:
            self.store.remember(preview.normalized, remote_candidates)

        remote_matches = self.scorer.rank(
            remote_candidates,
            preview.tokens,
            preview.normalized,
            preview.query,
            max_suggestions,
        )
        merged = merge_matches(local_matches, remote_matches, max_suggestions)
        logger.debug(
            "Search %r: %d local, %d remote (%s), %d merged",
            preview.query,
            len(local_matches),
            len(remote_matches),
            "cache" if outcome.from_cache else "network",
            len(merged),
        )
        return SearchResult(
            suggestions=_candidates(merged),
            local_candidates=_candidates(local_matches),
            used_remote=True,
            remote_count=len(remote_matches),
        )
