import asyncio
import time

import pytest
import requests

from domain.models import GeoPoint
from services import geocoding as geo
from services.autocomplete_engine import AutocompleteEngine
from services.request_coordinator import CancellationToken, LookupCancelled


class DummyResponse:
    def __init__(self, json_data, status_code=200):
        self._json = json_data
        self.status_code = status_code

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json


def _hit(lat="35.6834", lon="-105.9380", **address):
    return {
        "display_name": "100, Old Santa Fe Trail, Santa Fe, New Mexico, 87501, United States",
        "lat": lat,
        "lon": lon,
        "address": address,
    }


def test_parse_full_address():
    record = geo.parse_nominatim_result(_hit(
        house_number="100",
        road="Old Santa Fe Trail",
        city="Santa Fe",
        state="New Mexico",
        postcode="87501",
    ))
    assert record.primary == "100 Old Santa Fe Trail"
    assert record.secondary == "Santa Fe, New Mexico, 87501"
    assert record.short_label == "100 Old Santa Fe Trail, Santa Fe"
    assert record.house_number == "100"
    assert record.postcode == "87501"
    assert record.point == GeoPoint(35.6834, -105.938)


def test_parse_falls_back_to_display_name_and_default_locality():
    record = geo.parse_nominatim_result(_hit())
    assert record.primary.startswith("100, Old Santa Fe Trail")
    assert record.secondary == "Santa Fe, New Mexico"
    assert record.house_number is None


def test_parse_uses_alternate_street_keys():
    record = geo.parse_nominatim_result(_hit(pedestrian="Burro Alley", town="Santa Fe"))
    assert record.primary == "Burro Alley"


def test_parse_tolerates_bad_coordinates():
    record = geo.parse_nominatim_result(_hit(lat="not-a-number", road="Canyon Road"))
    assert record.point is None
    assert geo.parse_nominatim_result("garbage") is None


def test_search_builds_params_and_filters_out_of_bounds(monkeypatch):
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=None, token=None):
        seen.update(params)
        return DummyResponse([
            _hit(road="Canyon Road"),
            _hit(lat="40.7", lon="-74.0", road="Canyon Road"),
        ])

    monkeypatch.setattr(geo, "_throttled_get", fake_get)
    provider = geo.NominatimSearchProvider(limit=7, email="ops@example.com")
    records = provider.search("  canyon   rd ")

    assert [r.point for r in records] == [GeoPoint(35.6834, -105.938)]
    assert seen["q"] == "canyon rd, Santa Fe, NM"
    assert seen["limit"] == "7"
    assert seen["bounded"] == "1"
    assert seen["viewbox"] == "-106.15,35.55,-105.85,35.82"
    assert seen["email"] == "ops@example.com"


def test_search_returns_empty_list_for_no_results(monkeypatch):
    monkeypatch.setattr(geo, "_throttled_get", lambda *a, **k: DummyResponse([]))
    assert geo.NominatimSearchProvider().search("zzzz") == []


@pytest.mark.parametrize(
    "response",
    [DummyResponse([], status_code=503), DummyResponse(ValueError("bad json")), DummyResponse({"error": "x"})],
)
def test_search_raises_on_bad_response(monkeypatch, response):
    monkeypatch.setattr(geo, "_throttled_get", lambda *a, **k: response)
    with pytest.raises(geo.RemoteLookupError):
        geo.NominatimSearchProvider().search("canyon")


def test_fetch_candidates_runs_search(monkeypatch):
    monkeypatch.setattr(geo, "_throttled_get", lambda *a, **k: DummyResponse([_hit(road="Canyon Road")]))
    records = asyncio.run(geo.NominatimSearchProvider().fetch_candidates("canyon", CancellationToken()))
    assert [r.primary for r in records] == ["Canyon Road"]


def test_fetch_candidates_wraps_transport_errors(monkeypatch):
    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(geo, "_throttled_get", fake_get)
    with pytest.raises(geo.RemoteLookupError):
        asyncio.run(geo.NominatimSearchProvider().fetch_candidates("canyon", CancellationToken()))


def test_fetch_candidates_honours_cancelled_token(monkeypatch):
    calls = []
    monkeypatch.setattr(geo, "_throttled_get", lambda *a, **k: calls.append(1) or DummyResponse([]))
    token = CancellationToken()
    token.cancel()
    with pytest.raises(LookupCancelled):
        asyncio.run(geo.NominatimSearchProvider().fetch_candidates("canyon", token))
    assert calls == []


def test_throttled_get_uses_shared_session(monkeypatch):
    captured = {}

    def fake_session_get(url, params=None, headers=None, timeout=None):
        captured["url"] = url
        captured["headers"] = headers
        return DummyResponse([])

    monkeypatch.setattr(geo._session, "get", fake_session_get)
    geo.NominatimSearchProvider(base_url="https://nominatim.test/search/").search("canyon")
    assert captured["url"] == "https://nominatim.test/search"
    assert "User-Agent" in captured["headers"]


def test_throttled_get_drops_request_cancelled_while_waiting(monkeypatch):
    calls = []
    monkeypatch.setattr(geo._session, "get", lambda *a, **k: calls.append(1) or DummyResponse([]))
    monkeypatch.setattr(geo, "_last_request_ts", 123.0)
    token = CancellationToken()
    token.cancel()
    with pytest.raises(LookupCancelled):
        geo._throttled_get("https://nominatim.test/search", params={}, headers={}, timeout=1.0, token=token)
    assert calls == []
    assert geo._last_request_ts == 123.0


def test_superseded_searches_never_reach_nominatim(monkeypatch):
    sent = []

    def fake_session_get(url, params=None, headers=None, timeout=None):
        sent.append(params["q"])
        return DummyResponse([_hit(road="Canyon Road")])

    monkeypatch.setattr(geo._session, "get", fake_session_get)
    monkeypatch.setattr(geo, "_MIN_INTERVAL_SEC", 0.2)
    monkeypatch.setattr(geo, "_last_request_ts", time.time())
    engine = AutocompleteEngine(geo.NominatimSearchProvider())

    async def typing():
        searches = []
        for text in ("cany", "canyo", "canyon", "canyon r"):
            searches.append(asyncio.ensure_future(engine.search(text)))
            await asyncio.sleep(0.01)
        return await asyncio.gather(*searches)

    results = asyncio.run(typing())
    assert sent == ["canyon r, Santa Fe, NM"]
    assert [r.aborted for r in results] == [True, True, True, False]
    assert results[-1].suggestions[0].primary == "Canyon Road"
