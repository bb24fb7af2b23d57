from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Dict, Iterable, Iterator, List, Sequence, Set, TypeVar

from ..config import Settings
from ..models import EnrichedGiftIdea, FeedbackPreference, GiftFeedback, SuggestionRun
from ..models.records import utcnow
from .canonical import canonicalize
from .data_store import SuggestionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_feedback_idea(row: GiftFeedback, runs_by_id: Dict[str, SuggestionRun]) -> EnrichedGiftIdea | None:
    """Idea a feedback row points at; the run's first idea when the index is missing or stale."""

    run = runs_by_id.get(row.run_id) if row.run_id else None
    return run.idea_at(row.suggestion_index) if run is not None else None


class ExclusionSet:
    """Insertion-ordered set of canonical keys that must not be suggested again."""

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys: Dict[str, None] = {}
        for key in keys:
            self.add(key)

    def add(self, key: str) -> bool:
        """Add ``key``; empty keys are ignored. Returns True when the key is new."""
        if not key or key in self._keys:
            return False
        self._keys[key] = None
        return True

    def add_title(self, title: Any) -> bool:
        return self.add(canonicalize(title))

    def sample(self, limit: int) -> List[str]:
        """Most recently added keys first, at most ``limit`` of them."""
        if limit <= 0:
            return []
        keys = list(self._keys)
        return keys[::-1][:limit]

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)


@dataclass
class ExclusionSnapshot:
    exclusions: ExclusionSet
    saved_keys: Set[str] = field(default_factory=set)
    liked_keys: Set[str] = field(default_factory=set)
    disliked_keys: Set[str] = field(default_factory=set)
    source_counts: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[str] = field(default_factory=list)


class ExclusionSetBuilder:
    """Collects every title a recipient must never be offered again."""

    def __init__(
        self,
        store: SuggestionStore,
        *,
        window_days: int = 90,
        max_runs: int = 24,
        ideas_per_run: int = 20,
    ) -> None:
        self._store = store
        self._window_days = window_days
        self._max_runs = max_runs
        self._ideas_per_run = ideas_per_run

    @classmethod
    def from_settings(cls, store: SuggestionStore, settings: Settings) -> "ExclusionSetBuilder":
        return cls(
            store,
            window_days=settings.history_window_days,
            max_runs=settings.history_max_runs,
            ideas_per_run=settings.history_ideas_per_run,
        )

    async def build(
        self,
        user_id: str,
        recipient_id: str,
        caller_titles: Sequence[str] = (),
        *,
        request_logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> ExclusionSnapshot:
        log = request_logger or logger
        failed: List[str] = []
        since = utcnow() - timedelta(days=self._window_days)

        saved, feedback, recent_runs = await asyncio.gather(
            self._read("saved_ideas", self._store.list_saved_ideas(user_id, recipient_id), failed, log),
            self._read(
                "feedback",
                self._store.list_feedback(
                    user_id,
                    recipient_id,
                    (FeedbackPreference.LIKED, FeedbackPreference.DISLIKED),
                ),
                failed,
                log,
            ),
            self._read(
                "recent_runs",
                self._store.list_recent_runs(user_id, recipient_id, since=since, limit=self._max_runs),
                failed,
                log,
            ),
        )

        runs_by_id: Dict[str, SuggestionRun] = {run.id: run for run in recent_runs}
        missing_run_ids = [row.run_id for row in feedback if row.run_id and row.run_id not in runs_by_id]
        if missing_run_ids:
            origin_runs = await self._read(
                "feedback_runs",
                self._store.get_runs(user_id, recipient_id, missing_run_ids),
                failed,
                log,
            )
            runs_by_id.update({run.id: run for run in origin_runs})

        exclusions = ExclusionSet()
        snapshot = ExclusionSnapshot(exclusions=exclusions, failed_sources=failed)

        # Oldest first so that sample() favours the freshest history.
        run_titles = 0
        for run in reversed(recent_runs):
            for idea in run.suggestions[: self._ideas_per_run]:
                exclusions.add_title(idea.title)
                run_titles += 1

        for row in feedback:
            key = canonicalize(self._feedback_title(row, runs_by_id))
            if not key:
                continue
            exclusions.add(key)
            if row.preference == FeedbackPreference.LIKED:
                snapshot.liked_keys.add(key)
            else:
                snapshot.disliked_keys.add(key)

        for saved_idea in saved:
            key = canonicalize(saved_idea.title)
            if key:
                exclusions.add(key)
                snapshot.saved_keys.add(key)

        for title in caller_titles:
            exclusions.add_title(title)

        snapshot.source_counts = {
            "recent_runs": len(recent_runs),
            "recent_run_titles": run_titles,
            "feedback": len(feedback),
            "saved_ideas": len(saved),
            "caller_titles": len(caller_titles),
        }
        log.info(
            "Exclusion set built keys=%s sources=%s failed_sources=%s",
            len(exclusions),
            snapshot.source_counts,
            failed or "-",
        )
        return snapshot

    @staticmethod
    def _feedback_title(row: GiftFeedback, runs_by_id: Dict[str, SuggestionRun]) -> str | None:
        idea = resolve_feedback_idea(row, runs_by_id)
        return idea.title if idea is not None else row.title

    @staticmethod
    async def _read(
        source: str,
        lookup: Awaitable[List[T]],
        failed: List[str],
        log: logging.Logger | logging.LoggerAdapter,
    ) -> List[T]:
        try:
            return list(await lookup)
        except Exception as exc:
            log.warning("Exclusion source %s unavailable, continuing without it: %s", source, exc)
            failed.append(source)
            return []
