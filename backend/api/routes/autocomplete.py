"""
Autocomplete API routes.

Each client session gets its own engine so that one user's typing never
cancels another user's lookup.
"""
from collections import OrderedDict
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from domain.models import Candidate, GeoPoint
from services.autocomplete_engine import AutocompleteEngine
from services.district_boundary import DistrictBoundary, evaluate_location, load_default_boundary
from services.geocoding import NominatimSearchProvider
from settings import settings

router = APIRouter()
district_router = APIRouter()

_engines: "OrderedDict[str, AutocompleteEngine]" = OrderedDict()
_boundary: Optional[DistrictBoundary] = None
_boundary_loaded = False


class SuggestionResponse(BaseModel):
    primary: str
    secondary: str
    label: str
    short_label: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    house_number: Optional[str] = None
    postcode: Optional[str] = None
    distance_m: Optional[float] = None
    containment: str


class PreviewResponse(BaseModel):
    query: str
    normalized: str
    tokens: List[str]
    suggestions: List[SuggestionResponse]


class SearchResponse(BaseModel):
    query: str
    suggestions: List[SuggestionResponse]
    used_remote: bool
    aborted: bool = False
    remote_count: int = 0


class DistrictCheckResponse(BaseModel):
    state: str
    inside: Optional[bool] = None
    message: str


def _to_response(candidate: Candidate) -> SuggestionResponse:
    return SuggestionResponse(
        primary=candidate.primary,
        secondary=candidate.secondary,
        label=candidate.label,
        short_label=candidate.short_label,
        lat=candidate.point.lat if candidate.point else None,
        lon=candidate.point.lon if candidate.point else None,
        house_number=candidate.house_number,
        postcode=candidate.postcode,
        distance_m=candidate.distance_m,
        containment=candidate.containment.value,
    )


def get_district_boundary() -> Optional[DistrictBoundary]:
    global _boundary, _boundary_loaded
    if not _boundary_loaded:
        _boundary = load_default_boundary(settings.DISTRICT_GEOJSON_PATH, name=settings.DISTRICT_NAME)
        _boundary_loaded = True
    return _boundary


def get_engine(session: str) -> AutocompleteEngine:
    """Return the engine for a session, creating it (and evicting the oldest) as needed."""
    engine = _engines.get(session)
    if engine is None:
        if len(_engines) >= max(settings.AUTOCOMPLETE_MAX_SESSIONS, 1):
            _engines.popitem(last=False)
        config = settings.autocomplete_config(containment=get_district_boundary())
        engine = AutocompleteEngine(
            NominatimSearchProvider(limit=config.remote_limit),
            config,
        )
        _engines[session] = engine
    return engine


@router.get("/preview", response_model=PreviewResponse)
async def preview(q: str = Query(""), session: str = Query("default")):
    """Local-only suggestions; safe to call on every keystroke."""
    result = get_engine(session).preview(q)
    return PreviewResponse(
        query=result.query,
        normalized=result.normalized,
        tokens=result.tokens,
        suggestions=[_to_response(c) for c in result.local_candidates],
    )


@router.get("/search", response_model=SearchResponse)
async def search(q: str = Query(""), session: str = Query("default")):
    engine = get_engine(session)
    try:
        result = await engine.search(q)
    except Exception as exc:
        raise HTTPException(
            status_code=502,
            detail=f"Address search is temporarily unavailable: {exc}",
        )
    return SearchResponse(
        query=" ".join(q.split()),
        suggestions=[_to_response(c) for c in result.suggestions],
        used_remote=result.used_remote,
        aborted=result.aborted,
        remote_count=result.remote_count,
    )


@district_router.get("/contains", response_model=DistrictCheckResponse)
async def district_contains(
    lat: float,
    lon: float,
    label: str = Query("Selected location"),
):
    boundary = get_district_boundary()
    if boundary is None or not boundary.available:
        raise HTTPException(status_code=503, detail="District boundary not available")
    verdict = evaluate_location(boundary, GeoPoint(lat, lon), label=label)
    return DistrictCheckResponse(state=verdict.state, inside=verdict.inside, message=verdict.message)
