"""
Candidate preparation: turns provider records into immutable, scoreable candidates.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Optional

from domain.models import (
    Candidate,
    Containment,
    ContainmentProvider,
    GeoPoint,
    RawPlaceRecord,
)
from services.text_normalize import normalize_text, tokenize

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371008.8
_DIGITS_RE = re.compile(r"^\d+$")


def usable_point(point: Optional[GeoPoint]) -> Optional[GeoPoint]:
    """Return the point only when both coordinates are finite numbers."""
    if point is None:
        return None
    try:
        lat = float(point.lat)
        lon = float(point.lon)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return GeoPoint(lat, lon)


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle (haversine) distance in meters."""
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lon - a.lon)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def identity_key(primary: str, secondary: str, point: Optional[GeoPoint]) -> str:
    point = usable_point(point)
    lat = f"{point.lat:.6f}" if point else "unknown"
    lon = f"{point.lon:.6f}" if point else "unknown"
    return f"{(primary or '').lower()}|{secondary or ''}|{lat}|{lon}"


def _containment_for(point: GeoPoint, provider: Optional[ContainmentProvider]) -> Containment:
    if provider is None:
        return Containment.UNKNOWN
    try:
        value = provider(point)
    except Exception as exc:
        logger.warning("Containment check failed for %s,%s: %s", point.lat, point.lon, exc)
        return Containment.UNKNOWN
    if value is True:
        return Containment.INSIDE
    if value is False:
        return Containment.OUTSIDE
    return Containment.UNKNOWN


def prepare_candidate(
    raw: RawPlaceRecord,
    reference_point: Optional[GeoPoint] = None,
    containment: Optional[ContainmentProvider] = None,
) -> Candidate:
    """Build a Candidate from a raw record.

    Missing labels become empty strings; a missing or unusable point leaves
    distance unset and containment UNKNOWN.
    """
    primary = raw.primary or ""
    secondary = raw.secondary or ""
    label = raw.label or ""
    searchable = f"{primary} {secondary}".strip()
    search_normalized = normalize_text(searchable)
    primary_normalized = normalize_text(primary)
    primary_tokens = tuple(tokenize(primary_normalized))
    secondary_normalized = normalize_text(secondary)

    if label:
        label_normalized = normalize_text(label)
    else:
        label_normalized = search_normalized

    house_number = raw.house_number or None
    if not house_number and primary_tokens and _DIGITS_RE.match(primary_tokens[0]):
        house_number = primary_tokens[0]

    point = usable_point(raw.point)
    distance_m: Optional[float] = None
    resolved = Containment.UNKNOWN
    if point is not None:
        if reference_point is not None:
            distance_m = distance_meters(point, reference_point)
        resolved = _containment_for(point, containment)

    return Candidate(
        primary=primary,
        secondary=secondary,
        label=label,
        point=point,
        house_number=house_number,
        postcode=raw.postcode or None,
        short_label=raw.short_label,
        searchable=searchable,
        search_normalized=search_normalized,
        search_tokens=tuple(tokenize(search_normalized)),
        primary_normalized=primary_normalized,
        primary_tokens=primary_tokens,
        secondary_normalized=secondary_normalized,
        secondary_tokens=tuple(tokenize(secondary_normalized)),
        label_normalized=label_normalized,
        key=identity_key(primary, secondary, point),
        distance_m=distance_m,
        containment=resolved,
    )
