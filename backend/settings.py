import os
from typing import Optional

from domain.models import AutocompleteConfig, ContainmentProvider, GeoPoint

# Basic settings helper to read environment configuration.

SANTA_FE_CENTER = GeoPoint(35.686975, -105.937799)


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


def _as_float(val: str | None, default: Optional[float]) -> Optional[float]:
    if val is None or not val.strip():
        return default
    return float(val)


class Settings:
    def __init__(self) -> None:
        self.AUTOCOMPLETE_MIN_QUERY_LENGTH: int = _as_int(os.getenv("AUTOCOMPLETE_MIN_QUERY_LENGTH"), 3)
        self.AUTOCOMPLETE_MAX_SUGGESTIONS: int = _as_int(os.getenv("AUTOCOMPLETE_MAX_SUGGESTIONS"), 6)
        self.AUTOCOMPLETE_REMOTE_LIMIT: int = _as_int(os.getenv("AUTOCOMPLETE_REMOTE_LIMIT"), 10)
        self.AUTOCOMPLETE_CACHE_LIMIT: int = _as_int(os.getenv("AUTOCOMPLETE_CACHE_LIMIT"), 24)
        self.AUTOCOMPLETE_MAX_LOCAL_ENTRIES: int = _as_int(os.getenv("AUTOCOMPLETE_MAX_LOCAL_ENTRIES"), 240)
        self.AUTOCOMPLETE_MAX_SESSIONS: int = _as_int(os.getenv("AUTOCOMPLETE_MAX_SESSIONS"), 64)
        self.AUTOCOMPLETE_PROXIMITY_ENABLED: bool = _as_bool(os.getenv("AUTOCOMPLETE_PROXIMITY_ENABLED"), True)
        self.AUTOCOMPLETE_REFERENCE_LAT: Optional[float] = _as_float(
            os.getenv("AUTOCOMPLETE_REFERENCE_LAT"), SANTA_FE_CENTER.lat
        )
        self.AUTOCOMPLETE_REFERENCE_LON: Optional[float] = _as_float(
            os.getenv("AUTOCOMPLETE_REFERENCE_LON"), SANTA_FE_CENTER.lon
        )
        self.DISTRICT_GEOJSON_PATH: Optional[str] = os.getenv("DISTRICT_GEOJSON_PATH")
        self.DISTRICT_NAME: str = os.getenv("DISTRICT_NAME", "District 5")

    @property
    def reference_point(self) -> Optional[GeoPoint]:
        if not self.AUTOCOMPLETE_PROXIMITY_ENABLED:
            return None
        if self.AUTOCOMPLETE_REFERENCE_LAT is None or self.AUTOCOMPLETE_REFERENCE_LON is None:
            return None
        return GeoPoint(self.AUTOCOMPLETE_REFERENCE_LAT, self.AUTOCOMPLETE_REFERENCE_LON)

    def autocomplete_config(self, containment: Optional[ContainmentProvider] = None) -> AutocompleteConfig:
        return AutocompleteConfig(
            min_query_length=self.AUTOCOMPLETE_MIN_QUERY_LENGTH,
            max_suggestions=self.AUTOCOMPLETE_MAX_SUGGESTIONS,
            remote_limit=self.AUTOCOMPLETE_REMOTE_LIMIT,
            cache_limit=self.AUTOCOMPLETE_CACHE_LIMIT,
            max_local_entries=self.AUTOCOMPLETE_MAX_LOCAL_ENTRIES,
            reference_point=self.reference_point,
            containment=containment,
        )


settings = Settings()
