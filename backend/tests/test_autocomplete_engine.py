import asyncio

import pytest
from fakes import FakeProvider, StubbornProvider, place

from domain.models import AutocompleteConfig, GeoPoint, RawPlaceRecord
from services.autocomplete_engine import AutocompleteEngine
from services.request_coordinator import LookupCancelled

SANTA_FE = [
    place("Old Pecos Trail", lat=35.67, lon=-105.93),
    place("100 Old Santa Fe Trail", lat=35.68, lon=-105.94),
]


def _engine(provider, **config):
    return AutocompleteEngine(provider, AutocompleteConfig(**config))


def test_short_query_returns_nothing_without_lookup():
    provider = FakeProvider()
    result = asyncio.run(_engine(provider, min_query_length=3).search("ab"))
    assert result.suggestions == []
    assert result.used_remote is False
    assert provider.calls == []


def test_preview_below_minimum_has_no_local_matches():
    engine = _engine(FakeProvider({"canyon": [place("Canyon Rd")]}))
    asyncio.run(engine.search("canyon"))
    preview = engine.preview("  ca ")
    assert preview.query == "ca"
    assert preview.tokens == ["ca"]
    assert preview.local_matches == []


def test_full_address_ranks_first():
    provider = FakeProvider({"100 old santa fe trl": SANTA_FE})
    result = asyncio.run(_engine(provider).search("100  old santa fe trl "))
    assert result.used_remote is True
    assert result.suggestions[0].primary == "100 Old Santa Fe Trail"
    assert provider.calls == ["100 old santa fe trl"]


def test_repeat_query_uses_result_cache():
    provider = FakeProvider({"old santa": SANTA_FE})
    engine = _engine(provider)

    async def scenario():
        first = await engine.search("old santa")
        second = await engine.search("Old  Santa")
        return first, second

    first, second = asyncio.run(scenario())
    assert provider.calls == ["old santa"]
    assert second.used_remote is True
    assert [c.key for c in second.suggestions] == [c.key for c in first.suggestions]


def test_full_local_quota_skips_remote():
    provider = FakeProvider({"old trail": SANTA_FE})
    engine = _engine(provider, max_suggestions=2)

    async def scenario():
        await engine.search("old trail")
        return await engine.search("old")

    result = asyncio.run(scenario())
    assert result.used_remote is False
    assert len(result.suggestions) == 2
    assert provider.calls == ["old trail"]


def test_local_history_is_merged_with_remote_results():
    provider = FakeProvider({
        "canyon": [place("Canyon Rd", lat=35.68)],
        "canyon rd": [place("Canyon Rd", lat=35.68), place("Upper Canyon Rd", lat=35.69)],
    })
    engine = _engine(provider)

    async def scenario():
        await engine.search("canyon")
        return await engine.search("canyon rd")

    result = asyncio.run(scenario())
    primaries = [c.primary for c in result.suggestions]
    assert sorted(primaries) == ["Canyon Rd", "Upper Canyon Rd"]
    assert [c.primary for c in result.local_candidates] == ["Canyon Rd"]


def test_superseded_search_is_aborted_and_not_merged():
    async def scenario():
        provider = FakeProvider({
            "cerrillos": [place("Cerrillos Rd")],
            "cerrillos rd": [place("Cerrillos Road Frontage", lat=35.66)],
        })
        provider.gates["cerrillos"] = asyncio.Event()
        engine = _engine(provider)
        first = asyncio.ensure_future(engine.search("cerrillos"))
        for _ in range(3):
            await asyncio.sleep(0)
        second = await engine.search("cerrillos rd")
        provider.gates["cerrillos"].set()
        return engine, provider, await first, second

    engine, provider, first, second = asyncio.run(scenario())
    assert first.aborted is True
    assert first.used_remote is False
    assert first.suggestions == []
    assert provider.tokens[0].cancelled
    assert [c.primary for c in second.suggestions] == ["Cerrillos Road Frontage"]
    assert "cerrillos" not in engine.store.results


def test_late_result_from_stale_search_is_discarded():
    async def scenario():
        provider = StubbornProvider({
            "agua fria": [place("Agua Fria St")],
            "alameda": [place("Alameda St", lat=35.69)],
        })
        provider.gates["agua fria"] = asyncio.Event()
        engine = _engine(provider)
        first = asyncio.ensure_future(engine.search("agua fria"))
        for _ in range(3):
            await asyncio.sleep(0)
        second = await engine.search("alameda")
        return engine, await first, second

    engine, first, second = asyncio.run(scenario())
    assert first.aborted is True
    assert first.suggestions == []
    assert [c.primary for c in second.suggestions] == ["Alameda St"]
    assert "agua fria" not in engine.store.results
    assert all(c.primary != "Agua Fria St" for c in engine.store.index.candidates())


def test_provider_cancellation_falls_back_to_local():
    provider = FakeProvider(error=LookupCancelled())
    result = asyncio.run(_engine(provider).search("canyon"))
    assert result.aborted is True
    assert result.used_remote is False


def test_provider_failure_propagates():
    provider = FakeProvider(error=RuntimeError("provider down"))
    with pytest.raises(RuntimeError, match="provider down"):
        asyncio.run(_engine(provider).search("canyon"))


def test_records_with_broken_coordinates_still_show_up():
    broken = RawPlaceRecord(primary="Camino Rancheros", secondary="Santa Fe, NM", point=GeoPoint(float("nan"), 0.0))
    provider = FakeProvider({"camino": [broken]})
    engine = _engine(provider, reference_point=GeoPoint(35.68, -105.94), containment=lambda p: True)
    result = asyncio.run(engine.search("camino"))
    assert [c.primary for c in result.suggestions] == ["Camino Rancheros"]
    assert result.suggestions[0].point is None
    assert result.suggestions[0].distance_m is None


def test_index_respects_configured_capacity():
    provider = FakeProvider({"canyon": [place(f"{n} Canyon Rd", lat=35.6 + n / 100) for n in range(1, 6)]})
    engine = _engine(provider, max_local_entries=3)
    asyncio.run(engine.search("canyon"))
    assert len(engine.store.index) == 3
    assert [c.primary for c in engine.store.index.candidates()] == ["3 Canyon Rd", "4 Canyon Rd", "5 Canyon Rd"]


def test_remote_records_beyond_limit_are_ignored():
    provider = FakeProvider({"canyon": [place(f"{n} Canyon Rd", lat=35.6 + n / 100) for n in range(1, 4)]})
    engine = _engine(provider, remote_limit=2)
    result = asyncio.run(engine.search("canyon"))
    assert result.remote_count == 2
    assert [c.primary for c in engine.store.index.candidates()] == ["1 Canyon Rd", "2 Canyon Rd"]
    assert len(engine.store.results.get("canyon")) == 2
