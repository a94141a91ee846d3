"""
Core domain models for the place autocomplete engine.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple


class Containment(str, Enum):
    """Whether a candidate lies within the region of interest."""
    INSIDE = "inside"
    OUTSIDE = "outside"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate."""
    lat: float
    lon: float


@dataclass(frozen=True)
class RawPlaceRecord:
    """
    A place as handed over by a remote lookup provider.

    Only these fields are consumed by the engine; anything else the provider
    knows about the place stays on the provider side.
    """
    primary: str = ""
    secondary: str = ""
    label: str = ""  # full label, e.g. Nominatim's display_name
    point: Optional[GeoPoint] = None
    house_number: Optional[str] = None
    postcode: Optional[str] = None
    short_label: Optional[str] = None  # "primary, city" form for compact display


@dataclass(frozen=True)
class Candidate:
    """
    A prepared, scoreable place record.

    Built once by `services.candidates.prepare_candidate` and never mutated.
    The normalized/tokenized fields exist so scoring never has to re-normalize.
    """
    primary: str
    secondary: str
    label: str
    point: Optional[GeoPoint]
    house_number: Optional[str]
    postcode: Optional[str]
    short_label: Optional[str]
    searchable: str
    search_normalized: str
    search_tokens: Tuple[str, ...]
    primary_normalized: str
    primary_tokens: Tuple[str, ...]
    secondary_normalized: str
    secondary_tokens: Tuple[str, ...]
    label_normalized: str
    key: str  # identity key, the dedupe unit everywhere
    distance_m: Optional[float] = None
    containment: Containment = Containment.UNKNOWN

    @property
    def display_label(self) -> str:
        return self.short_label or self.label or self.primary


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate paired with its relevance score for one query."""
    candidate: Candidate
    score: float

    @property
    def key(self) -> str:
        return self.candidate.key


@dataclass(frozen=True)
class ScoringWeights:
    """
    Relevance weights used by the scorer.

    Magnitudes are empirically tuned; only the relative orderings between
    related signals (exact > prefix > substring > miss, primary > combined >
    full label) are relied on.
    """
    postal_exact: float = 18.0
    postal_prefix: float = 12.0
    house_number_exact: float = 20.0
    house_number_prefix: float = 16.0
    numeric_prefix: float = 8.0
    numeric_substring: float = 6.0
    numeric_miss: float = -8.0
    primary_exact: float = 13.0
    primary_prefix: float = 10.0
    any_exact: float = 9.0
    any_prefix: float = 6.0
    secondary_exact: float = 5.0
    secondary_prefix: float = 3.0
    substring: float = 2.0
    text_miss: float = -4.0
    sequential_step: float = 1.5
    sequential_bonus: float = 1.5
    unmatched_token: float = -3.0
    matched_token: float = 2.0
    min_prefix_length: int = 4
    primary_prefix_bonus: float = 10.0
    search_prefix_bonus: float = 6.0
    label_prefix_bonus: float = 4.0
    raw_primary_prefix_bonus: float = 6.0
    raw_label_prefix_bonus: float = 3.0
    missing_house_number: float = -6.0
    extra_token: float = -0.4
    proximity_radius_m: float = 6000.0
    proximity_bonus: float = 5.0
    inside_region: float = 6.0
    outside_region: float = -2.0


ContainmentProvider = Callable[[GeoPoint], Optional[bool]]


@dataclass(frozen=True)
class AutocompleteConfig:
    """Every tunable of an engine instance, fixed at construction."""
    min_query_length: int = 3
    max_suggestions: int = 6
    # most records requested from, and kept per lookup of, the remote provider
    remote_limit: int = 10
    cache_limit: int = 24
    max_local_entries: int = 240
    reference_point: Optional[GeoPoint] = None
    containment: Optional[ContainmentProvider] = None
    weights: ScoringWeights = field(default_factory=ScoringWeights)


@dataclass
class PreviewResult:
    """Synchronous, network-free view of a query against local history."""
    query: str  # trimmed, whitespace-collapsed raw query
    normalized: str
    tokens: List[str]
    local_matches: List[ScoredCandidate] = field(default_factory=list)

    @property
    def local_candidates(self) -> List[Candidate]:
        return [entry.candidate for entry in self.local_matches]


@dataclass
class SearchResult:
    """Outcome of one `AutocompleteEngine.search` call."""
    suggestions: List[Candidate] = field(default_factory=list)
    local_candidates: List[Candidate] = field(default_factory=list)
    used_remote: bool = False
    aborted: bool = False
    remote_count: int = 0
