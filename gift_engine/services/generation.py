from __future__ import annotations

import asyncio
import json
import logging
import math
import os
import re
from typing import Any, Dict, List, Sequence

from langchain_core.messages import AIMessage
from langchain_openai import ChatOpenAI
from langsmith import traceable

from ..config import Settings
from ..models import GiftIdea, GiftTier, RecipientContext
from ..prompts.suggestion_prompt import build_suggestion_prompt
from .errors import GenerationProviderError

logger = logging.getLogger(__name__)

FILLER_DESCRIPTION = "Thoughtful gift idea."
FILLER_WHY_IT_FITS = "This matches their profile well."

_CURRENCY_PATTERN = re.compile(r"[$€£¥₹₩₽]")
_DIGIT_PATTERN = re.compile(r"\d")


def _clean_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _coerce_price(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0:
        return None
    return number


def format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"${int(value)}"
    return f"${value:.2f}"


def derive_price_hint(price_min: float | None, price_max: float | None) -> str | None:
    if price_min is not None and price_max is not None:
        return f"{format_amount(price_min)}–{format_amount(price_max)}"
    if price_min is not None:
        return f"{format_amount(price_min)}+"
    if price_max is not None:
        return f"Up to {format_amount(price_max)}"
    return None


def resolve_price_hint(raw: Dict[str, Any], price_min: float | None, price_max: float | None) -> str | None:
    """Keep provider price text only when it names a currency amount."""

    for field_name in ("price_hint", "price_guidance"):
        text = _clean_text(raw.get(field_name))
        if text and _CURRENCY_PATTERN.search(text) and _DIGIT_PATTERN.search(text):
            return text
    return derive_price_hint(price_min, price_max)


def normalize_idea(raw: Dict[str, Any], index: int) -> GiftIdea:
    tier_value = raw.get("tier")
    try:
        tier = GiftTier(tier_value.strip().lower()) if isinstance(tier_value, str) else GiftTier.THOUGHTFUL
    except ValueError:
        tier = GiftTier.THOUGHTFUL

    price_min = _coerce_price(raw.get("price_min"))
    price_max = _coerce_price(raw.get("price_max"))
    provider_id = raw.get("id")
    if isinstance(provider_id, (int, float)) and not isinstance(provider_id, bool):
        provider_id = str(provider_id)

    return GiftIdea(
        id=_clean_text(provider_id) or str(index + 1),
        title=_clean_text(raw.get("title")) or f"Idea {index + 1}",
        short_description=_clean_text(raw.get("short_description")) or FILLER_DESCRIPTION,
        tier=tier,
        price_min=price_min,
        price_max=price_max,
        price_hint=resolve_price_hint(raw, price_min, price_max),
        why_it_fits=_clean_text(raw.get("why_it_fits")) or FILLER_WHY_IT_FITS,
        suggested_url=_clean_text(raw.get("suggested_url")),
        image_url=_clean_text(raw.get("image_url")) or _clean_text(raw.get("imageUrl")),
    )


def extract_first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span of ``text``, honouring JSON strings."""

    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : position + 1]
    return None


def parse_suggestions_payload(content: str) -> List[Dict[str, Any]]:
    """Parse the provider body into raw idea mappings; unusable bodies give ``[]``."""

    if not content or not content.strip():
        return []
    try:
        parsed: Any = json.loads(content)
    except json.JSONDecodeError:
        span = extract_first_json_object(content)
        if span is None:
            logger.warning("Generation response has no JSON object; payload=%s", content[:500])
            return []
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse extracted JSON span: %s; payload=%s", exc, content[:500])
            return []

    if isinstance(parsed, dict):
        items = parsed.get("suggestions")
    else:
        items = parsed
    if not isinstance(items, list):
        logger.warning("Generation response has no suggestions list; type=%s", type(parsed).__name__)
        return []
    return [item for item in items if isinstance(item, dict)]


def _extract_message_content(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # OpenAI can return list[dict]; join textual segments
        return " ".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return str(content)


class GenerationPassExecutor:
    """Runs one request/response cycle against the text-generation provider."""

    def __init__(
        self,
        settings: Settings,
        *,
        llm: Any | None = None,
    ) -> None:
        self._settings = settings
        self._min_count = settings.min_suggestions
        self._max_count = settings.max_suggestions
        self._exclusion_cap = settings.exclusion_prompt_cap
        self._timeout = settings.generation_timeout_seconds
        self._setup_langsmith(settings)
        if llm is None and settings.openai_api_key:
            llm = ChatOpenAI(
                model=settings.suggestion_model,
                api_key=settings.openai_api_key,
                temperature=settings.suggestion_temperature,
                timeout=settings.generation_timeout_seconds,
                base_url=settings.openai_base_url,
                max_retries=1,
            ).bind(response_format={"type": "json_object"})
        self._llm = llm
        self._prompt = build_suggestion_prompt()

    @property
    def model_name(self) -> str:
        return self._settings.suggestion_model

    @staticmethod
    def _setup_langsmith(settings: Settings) -> None:
        """Export LangSmith env vars so ``traceable`` picks them up."""

        if not (settings.langsmith_api_key and settings.langsmith_tracing_v2):
            return
        os.environ.setdefault("LANGCHAIN_TRACING_V2", "true")
        os.environ.setdefault("LANGSMITH_API_KEY", settings.langsmith_api_key)
        os.environ.setdefault("LANGSMITH_PROJECT", settings.langsmith_project or "gift-suggestions")
        if settings.langsmith_endpoint:
            os.environ.setdefault("LANGSMITH_ENDPOINT", settings.langsmith_endpoint)

    def clamp_count(self, requested_count: int) -> int:
        return min(self._max_count, max(self._min_count, requested_count))

    def build_payload(
        self,
        context: RecipientContext,
        requested_count: int,
        exclusion_sample: Sequence[str],
    ) -> Dict[str, Any]:
        return {
            "recipient": context.model_dump(exclude_none=True),
            "num_suggestions": self.clamp_count(requested_count),
            "disallowed_titles": list(exclusion_sample)[: self._exclusion_cap],
        }

    @traceable(run_type="chain", name="gift_suggestion_pass")
    async def request_pass(
        self,
        context: RecipientContext,
        requested_count: int,
        exclusion_sample: Sequence[str],
    ) -> List[GiftIdea]:
        """Ask the provider for ideas.

        Raises ``GenerationProviderError`` when the provider cannot be reached,
        rejects the call or exceeds the timeout. Bodies that cannot be parsed
        produce an empty list instead.
        """

        if self._llm is None:
            raise GenerationProviderError(
                "Text-generation provider is not configured",
                reason="llm_not_configured",
            )

        payload = self.build_payload(context, requested_count, exclusion_sample)
        messages = self._prompt.format_messages(payload_json=json.dumps(payload, ensure_ascii=False))
        try:
            message = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationProviderError(
                f"Generation pass exceeded {self._timeout:.0f}s",
                reason="generation_timeout",
            ) from exc
        except Exception as exc:
            raise GenerationProviderError(str(exc) or exc.__class__.__name__, reason="generation_failed") from exc

        usage = _extract_usage(message)
        raw_items = parse_suggestions_payload(_extract_message_content(message))
        ideas = [normalize_idea(item, index) for index, item in enumerate(raw_items)]
        logger.info(
            "Generation pass completed requested=%s returned=%s tokens=%s",
            payload["num_suggestions"],
            len(ideas),
            usage or "-",
        )
        return ideas


def _extract_usage(message: Any) -> Dict[str, int]:
    if not isinstance(message, AIMessage):
        return {}
    metadata = getattr(message, "response_metadata", {}) or {}
    usage = metadata.get("token_usage") or {}
    return {k: int(v) for k, v in usage.items() if isinstance(v, (int, float))}
