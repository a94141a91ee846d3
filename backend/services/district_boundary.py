"""
District boundary lookups backed by a GeoJSON FeatureCollection.

A DistrictBoundary is callable with a GeoPoint, so it can be handed to the
autocomplete engine as its containment provider.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry

from domain.models import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationVerdict:
    """User-facing result of checking one location against the district."""
    state: str  # "success" | "error"
    inside: Optional[bool]
    message: str


class DistrictBoundary:
    def __init__(self, geometries: List[BaseGeometry], name: str = "the district"):
        self.geometries = geometries
        self.name = name

    @classmethod
    def from_geojson(cls, data: Dict[str, Any], name: str = "the district") -> "DistrictBoundary":
        """Build from a FeatureCollection, a single Feature, or a bare geometry.

        Features whose geometry cannot be parsed are skipped with a warning.
        """
        if data.get("type") == "FeatureCollection":
            raw_geometries = [feature.get("geometry") for feature in data.get("features") or []]
        elif data.get("type") == "Feature":
            raw_geometries = [data.get("geometry")]
        else:
            raw_geometries = [data]

        geometries: List[BaseGeometry] = []
        for raw in raw_geometries:
            if not raw:
                continue
            try:
                geometries.append(shape(raw))
            except Exception as exc:
                logger.warning("Skipping unparseable district geometry: %s", exc)
        return cls(geometries, name=name)

    @classmethod
    def from_path(cls, path: str | Path, name: str = "the district") -> "DistrictBoundary":
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info("Loaded district boundary from %s", path)
        return cls.from_geojson(data, name=name)

    @property
    def available(self) -> bool:
        return bool(self.geometries)

    def contains(self, point: GeoPoint) -> Optional[bool]:
        """True/False for inside/outside; None when no boundary is loaded."""
        if not self.geometries:
            return None
        target = Point(point.lon, point.lat)
        for geometry in self.geometries:
            try:
                if geometry.covers(target):
                    return True
            except Exception as exc:
                logger.warning("Unable to evaluate polygon for feature: %s", exc)
        return False

    def __call__(self, point: GeoPoint) -> Optional[bool]:
        return self.contains(point)


def evaluate_location(
    boundary: Optional[DistrictBoundary],
    point: GeoPoint,
    label: str = "Selected location",
) -> LocationVerdict:
    if boundary is None or not boundary.available:
        return LocationVerdict(
            state="error",
            inside=None,
            message="District boundary not available.",
        )
    inside = boundary.contains(point)
    if inside:
        return LocationVerdict("success", True, f"{label} is inside {boundary.name}.")
    return LocationVerdict("error", False, f"{label} is not inside {boundary.name}.")


def load_default_boundary(path: Optional[str], name: str = "the district") -> Optional[DistrictBoundary]:
    """Load the configured boundary file, or None when unset or unreadable."""
    if not path:
        return None
    try:
        return DistrictBoundary.from_path(path, name=name)
    except (OSError, ValueError) as exc:
        logger.warning("District boundary %s could not be loaded: %s", path, exc)
        return None
