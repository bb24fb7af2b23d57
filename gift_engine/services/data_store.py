from __future__ import annotations

import abc
import json
import logging
import uuid
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..models import (
    AuthenticatedUser,
    EnrichedGiftIdea,
    FeedbackPreference,
    GiftFeedback,
    GiftHistoryItem,
    RecipientContext,
    RecipientInterest,
    RecipientRecord,
    SavedGiftIdea,
    SuggestionRun,
)
from ..models.records import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "mock_data"


class SuggestionStore(abc.ABC):
    """Recipient, history and run storage keyed by ``(user_id, recipient_id)``.

    Every read and write filters by both ids so one user can never see or
    touch another user's recipients.
    """

    @abc.abstractmethod
    async def resolve_user(self, token: str) -> AuthenticatedUser | None: ...

    @abc.abstractmethod
    async def get_recipient(self, user_id: str, recipient_id: str) -> RecipientRecord | None: ...

    @abc.abstractmethod
    async def list_interests(self, user_id: str, recipient_id: str) -> List[RecipientInterest]: ...

    @abc.abstractmethod
    async def list_gift_history(self, user_id: str, recipient_id: str, limit: int = 5) -> List[GiftHistoryItem]: ...

    @abc.abstractmethod
    async def list_saved_ideas(self, user_id: str, recipient_id: str) -> List[SavedGiftIdea]: ...

    @abc.abstractmethod
    async def add_saved_idea(self, user_id: str, recipient_id: str, **fields: Any) -> SavedGiftIdea: ...

    @abc.abstractmethod
    async def delete_saved_ideas(
        self,
        user_id: str,
        recipient_id: str,
        *,
        saved_id: str | None = None,
        suggestion_id: str | None = None,
    ) -> int: ...

    @abc.abstractmethod
    async def list_feedback(
        self,
        user_id: str,
        recipient_id: str,
        preferences: Iterable[FeedbackPreference] = (FeedbackPreference.LIKED, FeedbackPreference.DISLIKED),
    ) -> List[GiftFeedback]: ...

    @abc.abstractmethod
    async def upsert_feedback(
        self,
        user_id: str,
        recipient_id: str,
        *,
        run_id: str,
        suggestion_index: int | None,
        preference: FeedbackPreference,
        title: str | None,
    ) -> GiftFeedback: ...

    @abc.abstractmethod
    async def clear_feedback(
        self,
        user_id: str,
        recipient_id: str,
        *,
        run_id: str,
        suggestion_index: int | None,
    ) -> int: ...

    @abc.abstractmethod
    async def delete_feedback(self, user_id: str, recipient_id: str, feedback_id: str) -> int: ...

    @abc.abstractmethod
    async def list_recent_runs(
        self,
        user_id: str,
        recipient_id: str,
        *,
        since: datetime,
        limit: int,
    ) -> List[SuggestionRun]: ...

    @abc.abstractmethod
    async def get_runs(self, user_id: str, recipient_id: str, run_ids: Sequence[str]) -> List[SuggestionRun]: ...

    @abc.abstractmethod
    async def create_run(
        self,
        *,
        user_id: str,
        recipient_id: str,
        model: str,
        prompt_context: RecipientContext,
        suggestions: Sequence[EnrichedGiftIdea],
    ) -> SuggestionRun: ...

    async def get_run(self, user_id: str, recipient_id: str, run_id: str) -> SuggestionRun | None:
        runs = await self.get_runs(user_id, recipient_id, [run_id])
        return runs[0] if runs else None


class InMemorySuggestionStore(SuggestionStore):
    """Process-local store seeded from JSON fixtures."""

    def __init__(self, seed: Dict[str, Any] | None = None) -> None:
        self._lock = Lock()
        self._tokens: Dict[str, AuthenticatedUser] = {}
        self._recipients: Dict[str, RecipientRecord] = {}
        self._interests: Dict[str, List[RecipientInterest]] = {}
        self._gift_history: Dict[str, List[GiftHistoryItem]] = {}
        self._saved: List[SavedGiftIdea] = []
        self._feedback: List[GiftFeedback] = []
        self._runs: Dict[str, SuggestionRun] = {}
        if seed:
            self.load_seed(seed)

    # -------------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------------
    @classmethod
    def from_file(cls, path: Path | str) -> "InMemorySuggestionStore":
        path = Path(path)
        if not path.exists():
            logger.info("Seed data file %s is missing, starting empty.", path)
            return cls()
        try:
            with path.open("r", encoding="utf-8") as fp:
                return cls(json.load(fp))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Failed to load seed data %s: %s", path, exc)
            return cls()

    def load_seed(self, seed: Dict[str, Any]) -> None:
        for user in seed.get("users", []):
            token = user.get("token")
            if token:
                self.add_user(token, AuthenticatedUser(id=user["id"], email=user.get("email")))
        for recipient in seed.get("recipients", []):
            self.add_recipient(RecipientRecord.model_validate(recipient))
        for recipient_id, interests in (seed.get("interests") or {}).items():
            self._interests[recipient_id] = [RecipientInterest.model_validate(item) for item in interests]
        for recipient_id, gifts in (seed.get("gift_history") or {}).items():
            self._gift_history[recipient_id] = [GiftHistoryItem.model_validate(item) for item in gifts]

    def add_user(self, token: str, user: AuthenticatedUser) -> None:
        with self._lock:
            self._tokens[token] = user

    def add_recipient(
        self,
        recipient: RecipientRecord,
        *,
        interests: Sequence[RecipientInterest] = (),
        gift_history: Sequence[GiftHistoryItem] = (),
    ) -> None:
        with self._lock:
            self._recipients[recipient.id] = recipient
            if interests:
                self._interests[recipient.id] = list(interests)
            if gift_history:
                self._gift_history[recipient.id] = list(gift_history)

    def add_run(self, run: SuggestionRun) -> None:
        with self._lock:
            self._runs[run.id] = run

    def add_feedback(self, feedback: GiftFeedback) -> None:
        with self._lock:
            self._feedback.append(feedback)

    # -------------------------------------------------------------------------
    # SuggestionStore
    # -------------------------------------------------------------------------
    async def resolve_user(self, token: str) -> AuthenticatedUser | None:
        with self._lock:
            return self._tokens.get(token)

    async def get_recipient(self, user_id: str, recipient_id: str) -> RecipientRecord | None:
        with self._lock:
            return self._owned_recipient(user_id, recipient_id)

    async def list_interests(self, user_id: str, recipient_id: str) -> List[RecipientInterest]:
        with self._lock:
            if not self._owned_recipient(user_id, recipient_id):
                return []
            return deepcopy(self._interests.get(recipient_id, []))

    async def list_gift_history(self, user_id: str, recipient_id: str, limit: int = 5) -> List[GiftHistoryItem]:
        with self._lock:
            if not self._owned_recipient(user_id, recipient_id):
                return []
            gifts = list(self._gift_history.get(recipient_id, []))
        dated = sorted((g for g in gifts if g.purchased_at), key=lambda g: g.purchased_at, reverse=True)
        undated = [g for g in gifts if not g.purchased_at]
        return (dated + undated)[:limit]

    async def list_saved_ideas(self, user_id: str, recipient_id: str) -> List[SavedGiftIdea]:
        with self._lock:
            rows = [row for row in self._saved if row.user_id == user_id and row.recipient_id == recipient_id]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    async def add_saved_idea(self, user_id: str, recipient_id: str, **fields: Any) -> SavedGiftIdea:
        row = SavedGiftIdea(id=uuid.uuid4().hex, user_id=user_id, recipient_id=recipient_id, **fields)
        with self._lock:
            self._saved.append(row)
        return row

    async def delete_saved_ideas(
        self,
        user_id: str,
        recipient_id: str,
        *,
        saved_id: str | None = None,
        suggestion_id: str | None = None,
    ) -> int:
        def matches(row: SavedGiftIdea) -> bool:
            if row.user_id != user_id or row.recipient_id != recipient_id:
                return False
            if saved_id and row.id != saved_id:
                return False
            if suggestion_id and row.suggestion_id != suggestion_id:
                return False
            return True

        with self._lock:
            before = len(self._saved)
            self._saved = [row for row in self._saved if not matches(row)]
            return before - len(self._saved)

    async def list_feedback(
        self,
        user_id: str,
        recipient_id: str,
        preferences: Iterable[FeedbackPreference] = (FeedbackPreference.LIKED, FeedbackPreference.DISLIKED),
    ) -> List[GiftFeedback]:
        wanted = set(preferences)
        with self._lock:
            return [
                row
                for row in self._feedback
                if row.user_id == user_id and row.recipient_id == recipient_id and row.preference in wanted
            ]

    async def upsert_feedback(
        self,
        user_id: str,
        recipient_id: str,
        *,
        run_id: str,
        suggestion_index: int | None,
        preference: FeedbackPreference,
        title: str | None,
    ) -> GiftFeedback:
        with self._lock:
            for position, row in enumerate(self._feedback):
                if self._same_feedback_slot(row, user_id, recipient_id, run_id, suggestion_index):
                    updated = row.model_copy(update={"preference": preference, "title": title})
                    self._feedback[position] = updated
                    return updated
            created = GiftFeedback(
                id=uuid.uuid4().hex,
                user_id=user_id,
                recipient_id=recipient_id,
                run_id=run_id,
                suggestion_index=suggestion_index,
                preference=preference,
                title=title,
            )
            self._feedback.append(created)
            return created

    async def clear_feedback(
        self,
        user_id: str,
        recipient_id: str,
        *,
        run_id: str,
        suggestion_index: int | None,
    ) -> int:
        with self._lock:
            before = len(self._feedback)
            self._feedback = [
                row
                for row in self._feedback
                if not self._same_feedback_slot(row, user_id, recipient_id, run_id, suggestion_index)
            ]
            return before - len(self._feedback)

    async def delete_feedback(self, user_id: str, recipient_id: str, feedback_id: str) -> int:
        with self._lock:
            before = len(self._feedback)
            self._feedback = [
                row
                for row in self._feedback
                if not (row.id == feedback_id and row.user_id == user_id and row.recipient_id == recipient_id)
            ]
            return before - len(self._feedback)

    async def list_recent_runs(
        self,
        user_id: str,
        recipient_id: str,
        *,
        since: datetime,
        limit: int,
    ) -> List[SuggestionRun]:
        with self._lock:
            runs = [
                run
                for run in self._runs.values()
                if run.user_id == user_id and run.recipient_id == recipient_id and run.created_at >= since
            ]
        runs.sort(key=lambda run: run.created_at, reverse=True)
        return runs[:limit]

    async def get_runs(self, user_id: str, recipient_id: str, run_ids: Sequence[str]) -> List[SuggestionRun]:
        runs: List[SuggestionRun] = []
        with self._lock:
            for run_id in dict.fromkeys(run_ids):
                run = self._runs.get(run_id)
                if run is not None and run.user_id == user_id and run.recipient_id == recipient_id:
                    runs.append(run)
        return runs

    async def create_run(
        self,
        *,
        user_id: str,
        recipient_id: str,
        model: str,
        prompt_context: RecipientContext,
        suggestions: Sequence[EnrichedGiftIdea],
    ) -> SuggestionRun:
        run = SuggestionRun(
            id=uuid.uuid4().hex,
            user_id=user_id,
            recipient_id=recipient_id,
            model=model,
            prompt_context=prompt_context.model_dump(),
            suggestions=[idea.model_copy(deep=True) for idea in suggestions],
            created_at=utcnow(),
        )
        self.add_run(run)
        return run

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------
    def _owned_recipient(self, user_id: str, recipient_id: str) -> RecipientRecord | None:
        recipient = self._recipients.get(recipient_id)
        if recipient is None or recipient.user_id != user_id:
            return None
        return recipient

    @staticmethod
    def _same_feedback_slot(
        row: GiftFeedback,
        user_id: str,
        recipient_id: str,
        run_id: str,
        suggestion_index: Optional[int],
    ) -> bool:
        return (
            row.user_id == user_id
            and row.recipient_id == recipient_id
            and row.run_id == run_id
            and row.suggestion_index == suggestion_index
        )


_store: InMemorySuggestionStore | None = None
_store_lock = Lock()


def _seed_path(settings: Settings) -> Path:
    if settings.mock_data_path:
        return Path(settings.mock_data_path)
    return DEFAULT_DATA_DIR / "seed.json"


def get_suggestion_store() -> SuggestionStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = InMemorySuggestionStore.from_file(_seed_path(get_settings()))
        return _store
