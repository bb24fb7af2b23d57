from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Protocol, Sequence

from ..config import Settings
from ..models import GiftIdea, RecipientContext
from .canonical import canonicalize
from .exclusions import ExclusionSet
from .generation import FILLER_DESCRIPTION

logger = logging.getLogger(__name__)


class PassExecutor(Protocol):
    async def request_pass(
        self,
        context: RecipientContext,
        requested_count: int,
        exclusion_sample: Sequence[str],
    ) -> List[GiftIdea]: ...


class PlaceholderDetector:
    """Flags ideas whose titles echo schema defaults instead of real gifts.

    ``title_patterns`` reject on their own; ``style_patterns`` reject only when
    the description is one of the filler texts.
    """

    def __init__(
        self,
        title_patterns: Sequence[str] = (r"^idea\s*\d+", r"^placeholder$"),
        style_patterns: Sequence[str] = (r"^(gift\s+)?(idea|suggestion|option)\s*#?\d*$",),
        filler_descriptions: Sequence[str] = (FILLER_DESCRIPTION,),
    ) -> None:
        self._title_patterns: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in title_patterns]
        self._style_patterns: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in style_patterns]
        self._fillers = {text.strip().lower() for text in filler_descriptions if text.strip()}
        self._fillers.add(FILLER_DESCRIPTION.lower())

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlaceholderDetector":
        return cls(
            title_patterns=settings.placeholder_title_patterns,
            style_patterns=settings.placeholder_style_patterns,
            filler_descriptions=settings.filler_descriptions,
        )

    def is_placeholder(self, idea: GiftIdea) -> bool:
        title = idea.title.strip()
        if any(pattern.search(title) for pattern in self._title_patterns):
            return True
        if (idea.short_description or "").strip().lower() in self._fillers:
            return any(pattern.search(title) for pattern in self._style_patterns)
        return False


@dataclass
class PassReport:
    index: int
    requested: int
    returned: int = 0
    accepted: int = 0
    failed: bool = False


@dataclass
class ControllerResult:
    ideas: List[GiftIdea]
    target_count: int
    passes_used: int = 0
    filtered_excluded: int = 0
    filtered_placeholder: int = 0
    filtered_no_key: int = 0
    stopped_on_error: bool = False
    passes: List[PassReport] = field(default_factory=list)

    @property
    def top_up_passes(self) -> int:
        return max(0, self.passes_used - 1)

    @property
    def shortfall(self) -> int:
        return max(0, self.target_count - len(self.ideas))

    def counts(self) -> dict:
        return {
            "passes_used": self.passes_used,
            "top_up_passes": self.top_up_passes,
            "filtered_excluded": self.filtered_excluded,
            "filtered_placeholder": self.filtered_placeholder,
            "filtered_no_key": self.filtered_no_key,
            "accepted": len(self.ideas),
            "target": self.target_count,
        }


class MultiPassController:
    """Drives generation passes until enough novel ideas are collected.

    At most ``max_extra_passes + 1`` passes run. Every accepted idea's key is
    added to the exclusion set before the next idea is checked, so later
    passes cannot resurface it.
    """

    def __init__(
        self,
        executor: PassExecutor,
        *,
        placeholder_detector: PlaceholderDetector | None = None,
        max_extra_passes: int = 3,
        top_up_buffer: int = 2,
        min_suggestions: int = 3,
        max_suggestions: int = 10,
        exclusion_prompt_cap: int = 30,
    ) -> None:
        self._executor = executor
        self._placeholders = placeholder_detector or PlaceholderDetector()
        self._max_extra_passes = max_extra_passes
        self._top_up_buffer = top_up_buffer
        self._min_suggestions = min_suggestions
        self._max_suggestions = max_suggestions
        self._exclusion_prompt_cap = exclusion_prompt_cap

    @classmethod
    def from_settings(cls, executor: PassExecutor, settings: Settings) -> "MultiPassController":
        return cls(
            executor,
            placeholder_detector=PlaceholderDetector.from_settings(settings),
            max_extra_passes=settings.max_extra_passes,
            top_up_buffer=settings.top_up_buffer,
            min_suggestions=settings.min_suggestions,
            max_suggestions=settings.max_suggestions,
            exclusion_prompt_cap=settings.exclusion_prompt_cap,
        )

    def requested_count(self, remaining: int) -> int:
        return min(self._max_suggestions, max(self._min_suggestions, remaining + self._top_up_buffer))

    async def run(
        self,
        context: RecipientContext,
        target_count: int,
        exclusions: ExclusionSet,
        *,
        request_logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> ControllerResult:
        """Collect up to ``target_count`` ideas.

        A provider failure on the first pass propagates; on later passes it
        ends the loop and whatever was accepted so far is returned.
        """

        log = request_logger or logger
        result = ControllerResult(ideas=[], target_count=target_count)
        accepted = result.ideas

        while len(accepted) < target_count and result.passes_used <= self._max_extra_passes:
            pass_index = result.passes_used
            requested = self.requested_count(target_count - len(accepted))
            report = PassReport(index=pass_index, requested=requested)
            result.passes.append(report)
            try:
                candidates = await self._executor.request_pass(
                    context,
                    requested,
                    exclusions.sample(self._exclusion_prompt_cap),
                )
            except Exception as exc:
                if pass_index == 0:
                    raise
                report.failed = True
                result.stopped_on_error = True
                result.passes_used += 1
                log.warning("Generation pass %s failed, keeping %s accepted ideas: %s", pass_index, len(accepted), exc)
                break

            report.returned = len(candidates)
            for idea in candidates:
                if len(accepted) >= target_count:
                    break
                if not idea.title.strip():
                    result.filtered_no_key += 1
                    continue
                if self._placeholders.is_placeholder(idea):
                    result.filtered_placeholder += 1
                    continue
                key = canonicalize(idea.title)
                if not key:
                    result.filtered_no_key += 1
                    continue
                if key in exclusions:
                    result.filtered_excluded += 1
                    continue
                exclusions.add(key)
                accepted.append(idea)
                report.accepted += 1

            result.passes_used += 1
            log.info(
                "Generation pass %s requested=%s returned=%s accepted=%s total=%s/%s",
                pass_index,
                requested,
                report.returned,
                report.accepted,
                len(accepted),
                target_count,
            )

        del accepted[target_count:]
        self._assign_unique_ids(accepted)
        log.info("Multi-pass generation finished %s", result.counts())
        return result

    @staticmethod
    def _assign_unique_ids(ideas: List[GiftIdea]) -> None:
        seen: set[str] = set()
        for position, idea in enumerate(ideas):
            if idea.id in seen:
                idea.id = str(position + 1)
                while idea.id in seen:
                    idea.id = f"{idea.id}-{position + 1}"
            seen.add(idea.id)
