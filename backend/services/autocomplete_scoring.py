"""
Relevance scoring for autocomplete candidates.

A score is a relative ranking signal built from independent heuristics:
per-token matches (house numbers and postal codes get their own rules),
word-order alignment, query coverage, whole-string prefixes, a length
penalty, proximity to the reference point and region containment.
Only ordering and sign of the result carry meaning.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from domain.models import (
    Candidate,
    Containment,
    ScoredCandidate,
    ScoringWeights,
)

_DIGITS_RE = re.compile(r"^\d+$")
_LEADING_HOUSE_NUMBER_RE = re.compile(r"^\d+\s+")
_NON_DIGITS_RE = re.compile(r"\D+")


@dataclass(frozen=True)
class QueryShape:
    """What the raw query looks like, independent of any candidate."""
    expects_house_number: bool
    expects_postal_code: bool


def analyze_query(query_tokens: Sequence[str], raw_query: str) -> QueryShape:
    trimmed = (raw_query or "").strip()
    numeric = [token for token in query_tokens if _DIGITS_RE.match(token)]
    first_numeric = numeric[0] if numeric else ""
    expects_house_number = bool(_LEADING_HOUSE_NUMBER_RE.match(trimmed)) or bool(
        first_numeric
        and len(first_numeric) <= 4
        and trimmed.startswith(first_numeric)
        and len(trimmed) > len(first_numeric)
    )
    expects_postal_code = any(
        len(token) >= 5 or (not expects_house_number and len(token) >= 4)
        for token in numeric
    )
    return QueryShape(expects_house_number, expects_postal_code)


def _exact_and_prefix(tokens: Sequence[str], token: str) -> Tuple[int, int]:
    """Index of the exact match, and of the exact-else-first-prefix match (-1 when absent)."""
    try:
        exact = tokens.index(token)
    except ValueError:
        exact = -1
    if exact != -1:
        return exact, exact
    for index, part in enumerate(tokens):
        if part.startswith(token):
            return -1, index
    return -1, -1


class CandidateScorer:
    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(
        self,
        candidate: Candidate,
        query_tokens: Sequence[str],
        normalized_query: str = "",
        raw_query: str = "",
    ) -> float:
        if not query_tokens:
            return 0.0

        w = self.weights
        shape = analyze_query(query_tokens, raw_query)
        postcode = _NON_DIGITS_RE.sub("", str(candidate.postcode)) if candidate.postcode else None
        primary_tokens = candidate.primary_tokens
        secondary_tokens = candidate.secondary_tokens
        search_tokens = candidate.search_tokens
        # position used for postal matches: after every label token
        postal_position = len(primary_tokens) + len(secondary_tokens) + 1

        score = 0.0
        matched = 0
        sequential = 0
        last_position = -1

        for index, token in enumerate(query_tokens):
            if not token:
                continue
            exact_primary, prefix_primary = _exact_and_prefix(primary_tokens, token)
            exact_secondary, prefix_secondary = _exact_and_prefix(secondary_tokens, token)
            exact_any, prefix_any = _exact_and_prefix(search_tokens, token)

            token_score = 0.0
            position = -1

            if _DIGITS_RE.match(token):
                looks_like_postal = (
                    shape.expects_postal_code
                    and len(token) >= 4
                    and (not shape.expects_house_number or index > 0)
                )
                if looks_like_postal and postcode:
                    if postcode == token:
                        position = postal_position
                        token_score += w.postal_exact
                    elif postcode.startswith(token):
                        position = postal_position
                        token_score += w.postal_prefix

                if position == -1:
                    if primary_tokens and primary_tokens[0].startswith(token):
                        position = 0
                        if primary_tokens[0] == token:
                            token_score += w.house_number_exact
                        else:
                            token_score += w.house_number_prefix
                    elif prefix_any != -1:
                        position = prefix_any
                        token_score += w.numeric_prefix
                    elif token in candidate.search_normalized:
                        token_score += w.numeric_substring
                    else:
                        token_score += w.numeric_miss
            elif exact_primary != -1:
                position = exact_primary
                token_score += w.primary_exact
            elif prefix_primary != -1:
                position = prefix_primary
                token_score += w.primary_prefix
            elif exact_any != -1:
                position = exact_any
                token_score += w.any_exact
            elif prefix_any != -1:
                position = prefix_any
                token_score += w.any_prefix
            elif exact_secondary != -1:
                position = len(primary_tokens) + exact_secondary
                token_score += w.secondary_exact
            elif prefix_secondary != -1:
                position = len(primary_tokens) + prefix_secondary
                token_score += w.secondary_prefix
            elif token in candidate.search_normalized:
                token_score += w.substring
            else:
                token_score += w.text_miss

            if position != -1:
                matched += 1
                if position > last_position:
                    sequential += 1
                    last_position = position
                    token_score += w.sequential_step

            score += token_score

        if matched < len(query_tokens):
            score += (len(query_tokens) - matched) * w.unmatched_token
        if matched:
            score += matched * w.matched_token
        if sequential >= 2:
            score += sequential * w.sequential_bonus

        score += self._prefix_bonus(candidate, normalized_query or "", raw_query or "")

        if shape.expects_house_number and not candidate.house_number:
            score += w.missing_house_number

        extra_tokens = max(len(search_tokens) - len(query_tokens), 0)
        if search_tokens and extra_tokens:
            score += extra_tokens * w.extra_token

        score += self._geo_bonus(candidate)
        return score

    def _prefix_bonus(self, candidate: Candidate, normalized_query: str, raw_query: str) -> float:
        w = self.weights
        bonus = 0.0
        if len(normalized_query) >= w.min_prefix_length:
            if candidate.primary_normalized.startswith(normalized_query):
                bonus += w.primary_prefix_bonus
            elif candidate.search_normalized.startswith(normalized_query):
                bonus += w.search_prefix_bonus
            elif candidate.label_normalized.startswith(normalized_query):
                bonus += w.label_prefix_bonus

        # Verbatim typing keeps its exact-prefix feel, diacritics included.
        if len(raw_query) >= w.min_prefix_length:
            raw_lower = raw_query.lower()
            if candidate.primary and candidate.primary.lower().startswith(raw_lower):
                bonus += w.raw_primary_prefix_bonus
            elif candidate.label and candidate.label.lower().startswith(raw_lower):
                bonus += w.raw_label_prefix_bonus
        return bonus

    def _geo_bonus(self, candidate: Candidate) -> float:
        w = self.weights
        bonus = 0.0
        if candidate.distance_m is not None and w.proximity_radius_m > 0:
            capped = min(candidate.distance_m, w.proximity_radius_m)
            bonus += max(0.0, 1 - capped / w.proximity_radius_m) * w.proximity_bonus

        if candidate.containment is Containment.INSIDE:
            bonus += w.inside_region
        elif candidate.containment is Containment.OUTSIDE:
            bonus += w.outside_region
        return bonus

    def score_all(
        self,
        candidates: Iterable[Candidate],
        query_tokens: Sequence[str],
        normalized_query: str = "",
        raw_query: str = "",
    ) -> List[ScoredCandidate]:
        return [
            ScoredCandidate(candidate, self.score(candidate, query_tokens, normalized_query, raw_query))
            for candidate in candidates
        ]

    def rank(
        self,
        candidates: Iterable[Candidate],
        query_tokens: Sequence[str],
        normalized_query: str,
        raw_query: str,
        limit: int,
    ) -> List[ScoredCandidate]:
        """
        Score and order candidates for display.

        When anything scores positive, only the positive entries are kept.
        Otherwise the best `limit` entries are returned regardless of sign so
        that local history always yields something to show.
        """
        scored = self.score_all(candidates, query_tokens, normalized_query, raw_query)
        scored.sort(key=lambda entry: entry.score, reverse=True)
        positive = [entry for entry in scored if entry.score > 0]
        if positive:
            return positive[:limit]
        return scored[:limit]
