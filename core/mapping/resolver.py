"""Deterministic label -> profile field resolution without external calls."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache

from core.mapping.models import FieldMapping
from core.mapping.profile import PLACEHOLDER_VALUES, lookup_profile_value
from core.mapping.synonyms import FIELD_SYNONYMS, normalize_label
from core.patterns.labels import LABEL_STOPWORDS
from core.patterns.models import Pattern
from core.utils.log_events import log_event

logger = logging.getLogger("docfill.resolver")

EXACT_MATCH_CONFIDENCE = 0.9
CONTAINMENT_MATCH_CONFIDENCE = 0.7
COUNTERPARTY_CONFIDENCE = 0.9
MISSING_VALUE_PENALTY = 0.4
MISSING_VALUE_FLOOR = 0.3
_MIN_LABEL_LENGTH = 2
_MIN_CONTAINED_LABEL_LENGTH = 3


@dataclass(frozen=True)
class FieldMatch:
    field_key: str
    confidence: float
    synonym: str


@dataclass
class ResolverResult:
    """Deterministic resolution output.

    ``tentative`` holds, per pattern index, the reduced-confidence mapping of
    unresolved patterns whose field key is known but whose profile value is
    missing. It is used when the classifier cannot give a better answer.
    """

    mapped: list[FieldMapping] = field(default_factory=list)
    unresolved: list[Pattern] = field(default_factory=list)
    tentative: dict[int, FieldMapping] = field(default_factory=dict)


def match_field_key(
    label: str, synonyms: Mapping[str, str] = FIELD_SYNONYMS
) -> FieldMatch | None:
    """Match a label against the synonym dictionary.

    Exact normalized match first; otherwise whole-word containment in either
    direction, preferring the longest synonym. A label is only looked up inside
    a longer synonym when it carries a content word, so ``di`` never matches
    ``luogo di nascita``.
    """

    normalized = normalize_label(label)
    if len(normalized) < _MIN_LABEL_LENGTH:
        return None

    exact_key = synonyms.get(normalized)
    if exact_key is not None:
        return FieldMatch(
            field_key=exact_key, confidence=EXACT_MATCH_CONFIDENCE, synonym=normalized
        )

    label_can_be_contained = _has_content_word(normalized)
    best: tuple[str, str] | None = None
    for synonym, field_key in synonyms.items():
        contained = label_can_be_contained and _contains_word(synonym, normalized)
        if not (_contains_word(normalized, synonym) or contained):
            continue
        if best is None or len(synonym) > len(best[0]):
            best = (synonym, field_key)

    if best is None:
        return None
    return FieldMatch(field_key=best[1], confidence=CONTAINMENT_MATCH_CONFIDENCE, synonym=best[0])


def resolve_deterministic(
    patterns: Sequence[Pattern],
    profile: Mapping[str, object],
    *,
    synonyms: Mapping[str, str] = FIELD_SYNONYMS,
    placeholders: Iterable[str] = PLACEHOLDER_VALUES,
) -> ResolverResult:
    """Resolve patterns whose labels map to a profile field with a usable value.

    Counter-party patterns are mapped to a skip decision. Patterns without a
    dictionary match, or whose profile value is missing, are returned in
    ``unresolved`` in their original order.
    """

    placeholder_set = frozenset(placeholders)
    result = ResolverResult()

    for pattern in patterns:
        if pattern.section == "counterparty":
            result.mapped.append(
                FieldMapping.skipped(
                    pattern,
                    source="deterministic",
                    confidence=COUNTERPARTY_CONFIDENCE,
                    reason="counterparty_section",
                )
            )
            continue

        match = match_field_key(pattern.label, synonyms)
        if match is None:
            result.unresolved.append(pattern)
            continue

        value = lookup_profile_value(profile, match.field_key, placeholder_set)
        if value is None:
            result.unresolved.append(pattern)
            result.tentative[pattern.index] = FieldMapping.skipped(
                pattern,
                source="deterministic",
                field_key=match.field_key,
                confidence=max(MISSING_VALUE_FLOOR, match.confidence - MISSING_VALUE_PENALTY),
                reason="profile_value_missing",
            )
            continue

        result.mapped.append(
            FieldMapping(
                pattern_index=pattern.index,
                field_key=match.field_key,
                value=value,
                should_compile=True,
                confidence=match.confidence,
                source="deterministic",
                reason=f"synonym:{match.synonym}",
            )
        )

    log_event(
        logger,
        logging.DEBUG,
        "resolve_done",
        pattern_count=len(patterns),
        mapped=len(result.mapped),
        unresolved=len(result.unresolved),
        tentative=len(result.tentative),
    )
    return result


def _has_content_word(label: str) -> bool:
    if len(label) < _MIN_CONTAINED_LABEL_LENGTH:
        return False
    return any(word not in LABEL_STOPWORDS for word in label.split())


def _contains_word(haystack: str, needle: str) -> bool:
    if len(needle) < _MIN_LABEL_LENGTH:
        return False
    return _word_regex(needle).search(haystack) is not None


@lru_cache(maxsize=512)
def _word_regex(needle: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(needle)}(?!\w)")
