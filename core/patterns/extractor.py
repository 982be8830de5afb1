"""Blank-marker extraction from raw document text.

Rules:
- Every matcher runs independently over the whole text.
- Hits are ordered by start offset; at one offset the longer hit wins, then
  the earlier matcher.
- A hit starting inside an already accepted marker is dropped, so a marker is
  never reported twice at different granularities.
- Context windows are always sliced from the original text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from core.patterns.labels import DEFAULT_LABEL_STRATEGIES, LabelStrategy, infer_label
from core.patterns.models import Pattern, PatternType
from core.utils.log_events import log_event

logger = logging.getLogger("docfill.extractor")

DEFAULT_CONTEXT_WINDOW = 200
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class MarkerMatcher:
    """One marker shape and the regex that recognises it."""

    pattern_type: PatternType
    regex: re.Pattern[str]


MARKER_MATCHERS: tuple[MarkerMatcher, ...] = (
    MarkerMatcher(PatternType.ELLIPSIS_BRACKETS, re.compile(r"\[(?:\.{3,}|…+)\]")),
    MarkerMatcher(PatternType.EMPTY_BRACKETS, re.compile(r"\[[ \t\u00a0]{2,}\]")),
    MarkerMatcher(
        PatternType.BRACKETED_KEYWORD,
        re.compile(r"\[[A-ZÀ-ÖØ-Þ][A-ZÀ-ÖØ-Þ0-9_ .'/\-]{0,48}\]"),
    ),
    MarkerMatcher(PatternType.DOUBLE_BRACE, re.compile(r"\{\{\s*[A-Za-z_][\w.\-]*\s*\}\}")),
    MarkerMatcher(
        PatternType.ANGLE_BRACKET,
        re.compile(r"<<\s*[A-Za-z_][\w .\-]{0,40}?\s*>>|<[A-Za-z_][\w.\-]{0,40}>"),
    ),
    MarkerMatcher(PatternType.UNDERSCORE_RUN, re.compile(r"_{3,}")),
    MarkerMatcher(PatternType.DOT_RUN, re.compile(r"\.{5,}|…{2,}")),
    MarkerMatcher(PatternType.DASH_RUN, re.compile(r"[\-–—]{4,}")),
)


def extract_patterns(
    text: str,
    *,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    matchers: Sequence[MarkerMatcher] = MARKER_MATCHERS,
    label_strategies: Sequence[LabelStrategy] = DEFAULT_LABEL_STRATEGIES,
) -> list[Pattern]:
    """Find blank markers in ``text`` and return them sorted by offset.

    Args:
        text: Raw extracted document text.
        context_window: Max characters captured before and after each marker.
        matchers: Ordered marker matchers; earlier entries win ties.
        label_strategies: Ordered label inference strategies.

    Returns:
        Patterns with unique, strictly increasing ``index`` values. An empty
        list when nothing looks like a blank.
    """

    if context_window < 0:
        raise ValueError(f"context_window must be >= 0, got {context_window}")

    hits: list[tuple[int, int, int, PatternType]] = []
    for priority, matcher in enumerate(matchers):
        for match in matcher.regex.finditer(text):
            hits.append((match.start(), match.end(), priority, matcher.pattern_type))

    hits.sort(key=lambda item: (item[0], -(item[1] - item[0]), item[2]))

    patterns: list[Pattern] = []
    covered_until = -1
    for start, end, _priority, pattern_type in hits:
        if start < covered_until:
            continue
        covered_until = end
        raw_text = text[start:end]
        context_before = _collapse(text[max(0, start - context_window) : start])
        context_after = _collapse(text[end : end + context_window])
        patterns.append(
            Pattern(
                index=start,
                pattern_type=pattern_type,
                raw_text=raw_text,
                label=infer_label(context_before, raw_text, pattern_type, label_strategies),
                context_before=context_before,
                context_after=context_after,
            )
        )

    log_event(
        logger,
        logging.DEBUG,
        "extract_done",
        text_length=len(text),
        raw_hits=len(hits),
        pattern_count=len(patterns),
    )
    return patterns


def _collapse(window: str) -> str:
    return _WHITESPACE_RE.sub(" ", window).strip()
