"""Label inference for blank markers.

Each strategy looks at the text right before a marker and proposes a
human-readable field name. Strategies are tried in order and the first
non-empty answer wins; an empty label is a normal outcome.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol

from core.patterns.models import TOKEN_PATTERN_TYPES, PatternType

_LETTER = "A-Za-zÀ-ÖØ-öø-ÿ"
_TRAILING_COLON_RE = re.compile(
    rf"(?<![{_LETTER}.'/\-])"
    rf"([{_LETTER}][{_LETTER}.'/\-]*(?:\s+[{_LETTER}.'/\-]+){{0,4}})"
    r"\s*[:：]\s*$"
)
_HAS_LETTER_RE = re.compile(rf"[{_LETTER}]")
_PLAIN_WORD_RE = re.compile(rf"^[{_LETTER}][{_LETTER}.'\-]*$")
_TOKEN_INNER_RE = re.compile(r"^[\[{<]+\s*(.*?)\s*[\]}>]+$", re.DOTALL)
_TOKEN_WRAPPING_PUNCTUATION = ",;:()\"«»“”"
_MAX_COLON_LABEL_LENGTH = 40

LABEL_KEYWORDS: tuple[str, ...] = (
    "codice fiscale",
    "partita iva",
    "ragione sociale",
    "nome",
    "cognome",
    "indirizzo",
    "via",
    "cap",
    "città",
    "provincia",
    "email",
    "pec",
    "tel",
    "c.f",
    "p.iva",
)

GENERIC_TOKEN_NAMES = frozenset({"da compilare", "compilare", "campo", "inserire", "..."})

LABEL_STOPWORDS = frozenset(
    {
        "a", "ad", "al", "alla", "allo", "ai", "agli", "alle",
        "da", "dal", "dalla", "dallo", "dai", "dagli", "dalle",
        "di", "del", "della", "dello", "dei", "degli", "delle",
        "in", "nel", "nella", "nello", "nei", "negli", "nelle",
        "il", "lo", "la", "i", "gli", "le", "un", "uno", "una",
        "e", "ed", "o", "od", "per", "con", "su", "sul", "sulla", "tra", "fra",
    }
)
_MAX_TRAILING_STOPWORDS = 3


class LabelStrategy(Protocol):
    """Protocol for one label inference heuristic."""

    name: str

    def infer(self, context_before: str, raw_text: str, pattern_type: PatternType | None) -> str:
        """Return a label or an empty string."""


class TokenNameLabel:
    """Self-describing tokens such as ``{{codice_fiscale}}`` carry their own label."""

    name = "token_name"

    def infer(self, context_before: str, raw_text: str, pattern_type: PatternType | None) -> str:
        if pattern_type not in TOKEN_PATTERN_TYPES:
            return ""
        match = _TOKEN_INNER_RE.match(raw_text)
        if match is None:
            return ""
        inner = " ".join(match.group(1).replace("_", " ").split())
        if not _HAS_LETTER_RE.search(inner) or inner.lower() in GENERIC_TOKEN_NAMES:
            return ""
        return inner


class TrailingColonLabel:
    """``Nome e cognome: ____`` yields ``Nome e cognome``."""

    name = "trailing_colon"

    def infer(self, context_before: str, raw_text: str, pattern_type: PatternType | None) -> str:
        match = _TRAILING_COLON_RE.search(context_before)
        if match is None:
            return ""
        label = match.group(1).strip()
        if len(label) > _MAX_COLON_LABEL_LENGTH:
            return ""
        return label


class LastTokenLabel:
    """Fallback on the last word before the marker.

    Trailing function words are kept together with the word they follow, so
    ``in qualità di ____`` yields ``qualità di`` rather than ``di``.
    """

    name = "last_token"

    def infer(self, context_before: str, raw_text: str, pattern_type: PatternType | None) -> str:
        picked: list[str] = []
        for raw_token in reversed(context_before.split()):
            if picked and raw_token[-1] in _TOKEN_WRAPPING_PUNCTUATION:
                break
            token = raw_token.strip(_TOKEN_WRAPPING_PUNCTUATION)
            if not _HAS_LETTER_RE.search(token):
                break
            if picked and not _PLAIN_WORD_RE.match(token):
                break
            picked.append(token)
            if token.lower() not in LABEL_STOPWORDS:
                return " ".join(reversed(picked))
            if len(picked) > _MAX_TRAILING_STOPWORDS:
                break
        return ""


class KeywordLabel:
    """Last resort: the first known field keyword mentioned in the context."""

    name = "keyword"

    def __init__(self, keywords: Sequence[str] = LABEL_KEYWORDS) -> None:
        self._keywords = tuple(keywords)

    def infer(self, context_before: str, raw_text: str, pattern_type: PatternType | None) -> str:
        lowered = context_before.lower()
        for keyword in self._keywords:
            if keyword in lowered:
                return keyword
        return ""


DEFAULT_LABEL_STRATEGIES: tuple[LabelStrategy, ...] = (
    TokenNameLabel(),
    TrailingColonLabel(),
    LastTokenLabel(),
    KeywordLabel(),
)


def infer_label(
    context_before: str,
    raw_text: str = "",
    pattern_type: PatternType | None = None,
    strategies: Sequence[LabelStrategy] = DEFAULT_LABEL_STRATEGIES,
) -> str:
    """Run label strategies in order and return the first non-empty label."""

    for strategy in strategies:
        label = strategy.infer(context_before, raw_text, pattern_type)
        if label:
            return label
    return ""
