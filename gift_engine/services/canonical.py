"""Title canonicalization used to deduplicate gift ideas.

Examples (title -> key)::

    "LEGO Set!!!"          -> "lego set"
    "Lego sets"            -> "lego set"
    "Reading Glasses"      -> "reading glass"
    "iPhone 15 Cases"      -> "iphone 15 case"
    "PS5's"                -> "ps5"
    "The Gift for Mom"     -> "mom"
    "Spa & Self-Care Kit"  -> "spa and self care kit"
    "Chess"                -> "chess"
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

STOP_WORDS = frozenset(
    {"a", "an", "the", "for", "to", "of", "and", "with", "from", "gift", "idea"}
)

# Stands in for "&" while stop words are removed; only [a-z0-9] survive cleaning.
_AMPERSAND_TOKEN = "&"

_APOSTROPHES = re.compile(r"['`’]")
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9&]+")
_ENDS_UNCHANGED = re.compile(r"(ss|us|is)$")
_CONSONANT_IES = re.compile(r"[^aeiou]ies$")


def singularize(token: str) -> str:
    if len(token) <= 3 or _ENDS_UNCHANGED.search(token):
        return token
    if len(token) > 4 and _CONSONANT_IES.search(token):
        return token[:-3] + "y"
    if len(token) > 5 and token.endswith("sses"):
        return token[:-2]
    if len(token) > 4 and token.endswith(("xes", "zes", "ches", "shes")):
        return token[:-2]
    if token.endswith("s"):
        return token[:-1]
    return token


def canonicalize(title: Any) -> str:
    """Return the dedup key for ``title``; never raises, invalid input gives ``""``."""

    if not isinstance(title, str):
        return ""
    decomposed = unicodedata.normalize("NFKD", title)
    normalized = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower().strip()
    if not normalized:
        return ""

    cleaned = _APOSTROPHES.sub("", normalized).replace("&", f" {_AMPERSAND_TOKEN} ")
    tokens = _NON_ALPHANUMERIC.sub(" ", cleaned).split()
    if not tokens:
        return ""

    kept = [token for token in tokens if token not in STOP_WORDS]
    if not kept:
        kept = tokens

    return " ".join("and" if token == _AMPERSAND_TOKEN else singularize(token) for token in kept)


def canonical_key(item: Any) -> str:
    """Canonical key of a title string or of any object/mapping carrying a ``title``."""

    if item is None or isinstance(item, str):
        return canonicalize(item)
    if isinstance(item, dict):
        return canonicalize(item.get("title"))
    return canonicalize(getattr(item, "title", None))
