from __future__ import annotations

import asyncio

from fakes import make_run
from gift_engine.models import FeedbackPreference, GiftFeedback
from gift_engine.services.data_store import InMemorySuggestionStore
from gift_engine.services.exclusions import ExclusionSet, ExclusionSetBuilder


def _feedback(run_id, index, preference, title=None, recipient_id="rec-maya"):
    return GiftFeedback(
        id=f"fb-{run_id}-{index}",
        user_id="user-demo",
        recipient_id=recipient_id,
        run_id=run_id,
        suggestion_index=index,
        preference=preference,
        title=title,
    )


class FailingSavedStore(InMemorySuggestionStore):
    async def list_saved_ideas(self, user_id, recipient_id):
        raise RuntimeError("saved ideas table unavailable")


def test_exclusion_set_sample_is_newest_first():
    exclusions = ExclusionSet(["a", "b", "", "c", "a"])
    assert len(exclusions) == 3
    assert exclusions.sample(2) == ["c", "b"]
    assert exclusions.sample(0) == []
    assert "" not in exclusions


def test_build_collects_every_source(store: InMemorySuggestionStore):
    store.add_run(make_run("run-old", ["Candle Set", "Mug"], days_ago=10))
    store.add_run(make_run("run-new", ["Tea Sampler"], days_ago=2))
    store.add_run(make_run("run-expired", ["Kite"], days_ago=120))
    store.add_run(make_run("run-other-user", ["Drone"], user_id="user-other", recipient_id="rec-leo"))
    store.add_feedback(_feedback("run-old", 1, FeedbackPreference.LIKED))
    asyncio.run(store.add_saved_idea("user-demo", "rec-maya", title="Botanical Print"))

    snapshot = asyncio.run(
        ExclusionSetBuilder(store).build("user-demo", "rec-maya", ["Scented Candles!"])
    )

    assert list(snapshot.exclusions) == [
        "candle set",
        "mug",
        "tea sampler",
        "botanical print",
        "scented candle",
    ]
    assert snapshot.liked_keys == {"mug"}
    assert snapshot.saved_keys == {"botanical print"}
    assert snapshot.failed_sources == []
    assert "kite" not in snapshot.exclusions
    assert "drone" not in snapshot.exclusions


def test_feedback_title_resolved_from_older_run(store: InMemorySuggestionStore):
    # Outside the 90 day window, so it is fetched through the secondary lookup.
    store.add_run(make_run("run-ancient", ["Vinyl Record", "Bonsai Kit"], days_ago=200))
    store.add_feedback(_feedback("run-ancient", 1, FeedbackPreference.DISLIKED, title="stale title"))
    store.add_feedback(_feedback("run-ancient", 9, FeedbackPreference.LIKED))

    snapshot = asyncio.run(ExclusionSetBuilder(store).build("user-demo", "rec-maya"))

    assert snapshot.disliked_keys == {"bonsai kit"}
    # Out-of-range index falls back to the first idea.
    assert snapshot.liked_keys == {"vinyl record"}


def test_feedback_falls_back_to_denormalized_title(store: InMemorySuggestionStore):
    store.add_feedback(_feedback("run-missing", 0, FeedbackPreference.LIKED, title="Hammock"))

    snapshot = asyncio.run(ExclusionSetBuilder(store).build("user-demo", "rec-maya"))

    assert "hammock" in snapshot.exclusions
    assert snapshot.liked_keys == {"hammock"}


def test_failed_source_is_skipped_and_reported():
    store = FailingSavedStore()
    store.add_run(make_run("run-1", ["Candle"]))

    snapshot = asyncio.run(ExclusionSetBuilder(store).build("user-demo", "rec-maya", ["Mug"]))

    assert snapshot.failed_sources == ["saved_ideas"]
    assert list(snapshot.exclusions) == ["candle", "mug"]


def test_runs_are_capped_by_count_and_ideas_per_run(store: InMemorySuggestionStore):
    for index in range(5):
        store.add_run(make_run(f"run-{index}", [f"Item {index} {n}" for n in range(4)], days_ago=index + 1))

    builder = ExclusionSetBuilder(store, max_runs=2, ideas_per_run=3)
    snapshot = asyncio.run(builder.build("user-demo", "rec-maya"))

    assert len(snapshot.exclusions) == 6
    assert snapshot.source_counts["recent_runs"] == 2
