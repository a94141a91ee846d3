"""Forward address search against OpenStreetMap Nominatim.

Provides the remote lookup provider used by the autocomplete engine. Only the
handful of fields the engine consumes are extracted from Nominatim's payload.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import re
import threading
import time
from typing import Any, List, Optional, Tuple

import requests

from domain.models import GeoPoint, RawPlaceRecord
from services.request_coordinator import CancellationToken
from services.text_normalize import collapse_whitespace

NOMINATIM_SEARCH_URL = os.getenv("NOMINATIM_SEARCH_URL", "https://nominatim.openstreetmap.org/search")
logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()
_MIN_INTERVAL_SEC = float(os.getenv("NOMINATIM_MIN_INTERVAL", "1.1"))
_logged_ua = False
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT")
NOMINATIM_REFERER = os.getenv("NOMINATIM_REFERER")
NOMINATIM_EMAIL = os.getenv("NOMINATIM_EMAIL")

FALLBACK_UA = "district-lookup/0.1 (contact: example@example.com)"
if NOMINATIM_USER_AGENT is None:
    logger.warning(
        "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
        "This may violate Nominatim usage policy."
    )


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


_ua_value = NOMINATIM_USER_AGENT or FALLBACK_UA
NOMINATIM_HEADERS = {
    "User-Agent": _ua_value,
    "Accept": "application/json",
}
if NOMINATIM_REFERER:
    NOMINATIM_HEADERS["Referer"] = NOMINATIM_REFERER

# (west, south, east, north) of the search area around Santa Fe, NM
DEFAULT_VIEWBOX: Tuple[float, float, float, float] = (-106.15, 35.55, -105.85, 35.82)
# (south, west, north, east) of the map area results must fall within
DEFAULT_BOUNDS: Tuple[float, float, float, float] = (35.56, -106.15, 35.81, -105.80)
DEFAULT_LOCALITY_SUFFIX = "Santa Fe, NM"
DEFAULT_CITY = "Santa Fe"
DEFAULT_STATE = "New Mexico"

_STREET_KEYS = ("road", "pedestrian", "cycleway", "footway", "path", "neighbourhood", "suburb")
_CITY_KEYS = ("city", "town", "village", "hamlet")


class RemoteLookupError(RuntimeError):
    """The search provider answered with an error or an unusable payload."""


def _throttled_get(
    url: str,
    *,
    params: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
    token: Optional[CancellationToken] = None,
) -> requests.Response:
    """Perform a GET request with a simple global rate limit.

    A request whose token is cancelled while it waits for its slot is
    dropped without reaching the network and without using up the slot.
    """
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < _MIN_INTERVAL_SEC:
            time.sleep(_MIN_INTERVAL_SEC - delta)
        if token is not None:
            token.raise_if_cancelled()
        _last_request_ts = time.time()
    return _session.get(url, params=params, headers=headers, timeout=timeout)


def _parse_point(item: dict) -> Optional[GeoPoint]:
    try:
        lat = float(item.get("lat"))
        lon = float(item.get("lon"))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return GeoPoint(lat, lon)


def _first(address: dict, keys: Tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if value:
            return str(value)
    return None


def parse_nominatim_result(
    item: Any,
    default_city: str = DEFAULT_CITY,
    default_state: str = DEFAULT_STATE,
) -> Optional[RawPlaceRecord]:
    """Map one Nominatim jsonv2 search hit to a RawPlaceRecord.

    Rules:
    - primary is "house_number street" when the address has them, else the display name.
    - secondary is "city, state, postcode", falling back to the default locality.
    - an unparseable coordinate yields a record without a point rather than an error.
    """
    if not isinstance(item, dict):
        return None
    label = str(item.get("display_name") or "")
    address = item.get("address")
    if not isinstance(address, dict):
        address = {}

    house_number = str(address["house_number"]).strip() if address.get("house_number") else None
    street = _first(address, _STREET_KEYS)
    primary = " ".join(part for part in (house_number, street) if part) or label

    city = _first(address, _CITY_KEYS) or default_city
    postcode = str(address["postcode"]) if address.get("postcode") else None
    locality = [part for part in (city, address.get("state") or default_state, postcode) if part]

    return RawPlaceRecord(
        primary=primary,
        secondary=", ".join(str(part) for part in locality),
        label=label,
        point=_parse_point(item),
        house_number=house_number or None,
        postcode=postcode,
        short_label=", ".join(part for part in (primary, city) if part),
    )


def within_bounds(point: Optional[GeoPoint], bounds: Tuple[float, float, float, float]) -> bool:
    if point is None:
        return False
    south, west, north, east = bounds
    return south <= point.lat <= north and west <= point.lon <= east


class NominatimSearchProvider:
    """Remote lookup provider backed by Nominatim's /search endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        limit: int = 10,
        viewbox: Optional[Tuple[float, float, float, float]] = DEFAULT_VIEWBOX,
        bounds: Optional[Tuple[float, float, float, float]] = DEFAULT_BOUNDS,
        locality_suffix: Optional[str] = DEFAULT_LOCALITY_SUFFIX,
        country_codes: str = "us",
        email: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.base_url = (base_url or NOMINATIM_SEARCH_URL).rstrip("/")
        self.limit = limit
        self.viewbox = viewbox
        self.bounds = bounds
        self.locality_suffix = locality_suffix
        self.country_codes = country_codes
        self.email = email or NOMINATIM_EMAIL
        self.timeout = timeout

    def build_params(self, query: str) -> dict[str, str]:
        text = collapse_whitespace(query)
        if self.locality_suffix:
            text = f"{text}, {self.locality_suffix}"
        params = {
            "format": "jsonv2",
            "addressdetails": "1",
            "countrycodes": self.country_codes,
            "limit": str(self.limit),
            "accept-language": "en",
            "q": text,
        }
        if self.viewbox:
            params["viewbox"] = ",".join(str(v) for v in self.viewbox)
            params["bounded"] = "1"
        if self.email:
            params["email"] = self.email
        return params

    def search(self, query: str, token: Optional[CancellationToken] = None) -> List[RawPlaceRecord]:
        """Blocking search; returns [] when Nominatim has no results."""
        global _logged_ua
        if not _logged_ua:
            logger.debug("Nominatim User-Agent: %s", _redact_email(_ua_value))
            _logged_ua = True

        resp = _throttled_get(
            self.base_url,
            params=self.build_params(query),
            headers=NOMINATIM_HEADERS,
            timeout=self.timeout,
            token=token,
        )
        if resp.status_code != 200:
            raise RemoteLookupError(f"Lookup failed ({resp.status_code})")
        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteLookupError(f"Lookup returned invalid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise RemoteLookupError("Lookup returned an unexpected payload")

        records = [record for record in map(parse_nominatim_result, data) if record is not None]
        if self.bounds:
            records = [record for record in records if within_bounds(record.point, self.bounds)]
        logger.debug("Nominatim search %r returned %d usable results", query, len(records))
        return records

    async def fetch_candidates(self, query: str, token: CancellationToken) -> List[RawPlaceRecord]:
        token.raise_if_cancelled()
        # A cancelled task stops awaiting at once; the worker thread checks the
        # token again once it holds the throttle slot.
        try:
            records = await asyncio.to_thread(self.search, query, token)
        except requests.RequestException as exc:
            raise RemoteLookupError(f"Lookup failed: {exc}") from exc
        token.raise_if_cancelled()
        return records
