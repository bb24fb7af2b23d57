from __future__ import annotations

import asyncio

from fakes import FakeSearcher, make_ideas
from gift_engine.services.enrichment import EnrichmentFanout


def test_enrich_preserves_order_and_length():
    searcher = FakeSearcher()
    ideas = make_ideas("Candle", "Mug", "Plant")

    enriched = asyncio.run(EnrichmentFanout(searcher).enrich(ideas))

    assert [idea.title for idea in enriched] == ["Candle", "Mug", "Plant"]
    assert all(idea.product is not None for idea in enriched)
    assert enriched[0].product.title == "Candle (product)"
    assert enriched[0].product.product_url == "https://shop.example/p"
    assert sorted(searcher.queries) == ["Candle", "Mug", "Plant"]


def test_failed_lookup_only_affects_its_own_idea():
    searcher = FakeSearcher(failing=["Mug"], empty=["Plant"])
    ideas = make_ideas("Candle", "Mug", "Plant")

    enriched = asyncio.run(EnrichmentFanout(searcher).enrich(ideas))

    assert enriched[0].product is not None
    assert enriched[1].product is None
    assert enriched[2].product is None
    assert enriched[1].title == "Mug"
    assert EnrichmentFanout.unmatched_count(enriched) == 2


def test_enrich_empty_list():
    assert asyncio.run(EnrichmentFanout(FakeSearcher()).enrich([])) == []
