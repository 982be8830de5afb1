"""Right-to-left substitution of resolved values into a serialized document body."""

from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from collections.abc import Sequence
from xml.sax.saxutils import escape

from core.mapping.models import FieldMapping
from core.patterns.models import Pattern
from core.render.models import BodyFormat, CompilationResult, SubstitutionLogEntry
from core.utils.errors import InputShapeError
from core.utils.log_events import log_event

logger = logging.getLogger("docfill.recompiler")

BODY_FORMATS: tuple[BodyFormat, ...] = ("markup", "text")
_MARKUP_VALUE_ENTITIES = {'"': "&quot;", "'": "&apos;"}
_MISMATCH_REASON = "marker_count_mismatch"
_OVERLAP_REASON = "marker_overlap"

Span = tuple[int, int]


def escape_markup(value: str) -> str:
    """Escape ``& < > " '`` so the value is inert inside XML text or attributes."""

    return escape(value, _MARKUP_VALUE_ENTITIES)


def recompile(
    serialized_body: str,
    patterns: Sequence[Pattern],
    mappings: Sequence[FieldMapping],
    *,
    body_format: BodyFormat = "markup",
) -> CompilationResult:
    """Apply compiling mappings to ``serialized_body`` from the last marker to the first.

    Every marker is located in the untouched body before any edit. Patterns
    sharing the same literal text are paired with its occurrences in order,
    and only when both counts agree; an occurrence nested inside a longer
    marker of another pattern does not count. Otherwise the whole group is
    left in place and reported as ``not_found``.

    Raises:
        InputShapeError: mappings do not line up one-to-one with patterns, or
            ``body_format`` is unknown.
    """

    pairs = _associate(patterns, mappings, body_format)
    spans, found_counts = _plan_spans(serialized_body, [pair[0] for pair in pairs], body_format)
    expected_counts = Counter(pattern.raw_text for pattern, _mapping in pairs)

    result = CompilationResult(body=serialized_body, body_format=body_format)
    entries: list[SubstitutionLogEntry] = []
    planned: list[tuple[Span, Pattern, FieldMapping]] = []

    for pattern, mapping in pairs:
        if mapping.needs_review:
            result.needs_review_count += 1

        if not mapping.should_compile:
            result.skipped_count += 1
            entries.append(_entry("skipped", pattern, mapping))
            continue

        span = spans.get(pattern.index)
        if span is None:
            result.not_found_count += 1
            entries.append(_entry("not_found", pattern, mapping, reason=_MISMATCH_REASON))
            log_event(
                logger,
                logging.WARNING,
                "substitution_not_found",
                pattern_index=pattern.index,
                marker=pattern.raw_text,
                field_key=mapping.field_key,
                expected=expected_counts[pattern.raw_text],
                found=found_counts[pattern.raw_text],
            )
            continue
        planned.append((span, pattern, mapping))

    body = serialized_body
    limit = len(body)
    for (start, end), pattern, mapping in sorted(planned, key=lambda item: item[0], reverse=True):
        if end > limit:
            result.not_found_count += 1
            entries.append(_entry("not_found", pattern, mapping, reason=_OVERLAP_REASON))
            continue
        value = escape_markup(mapping.value) if body_format == "markup" else mapping.value
        body = body[:start] + value + body[end:]
        limit = start
        result.compiled_count += 1
        entries.append(_entry("replaced", pattern, mapping, body_offset=start))

    result.body = body
    result.entries = sorted(entries, key=lambda entry: entry.pattern_index)
    log_event(
        logger,
        logging.INFO,
        "recompile_done",
        body_format=body_format,
        compiled=result.compiled_count,
        skipped=result.skipped_count,
        not_found=result.not_found_count,
        needs_review=result.needs_review_count,
    )
    return result


def _associate(
    patterns: Sequence[Pattern],
    mappings: Sequence[FieldMapping],
    body_format: str,
) -> list[tuple[Pattern, FieldMapping]]:
    if body_format not in BODY_FORMATS:
        raise InputShapeError(f"Unsupported body format: {body_format}")
    if len(patterns) != len(mappings):
        raise InputShapeError(
            "patterns and mappings must have the same length",
            detail={"patterns": len(patterns), "mappings": len(mappings)},
        )

    by_index: dict[int, Pattern] = {}
    for pattern in patterns:
        if pattern.index in by_index:
            raise InputShapeError(
                "Duplicate pattern index", detail={"pattern_index": pattern.index}
            )
        by_index[pattern.index] = pattern

    pairs: list[tuple[Pattern, FieldMapping]] = []
    seen: set[int] = set()
    for mapping in mappings:
        if mapping.pattern_index in seen:
            raise InputShapeError(
                "More than one mapping for a pattern",
                detail={"pattern_index": mapping.pattern_index},
            )
        seen.add(mapping.pattern_index)
        pattern = by_index.get(mapping.pattern_index)
        if pattern is None:
            raise InputShapeError(
                "Mapping references an unknown pattern",
                detail={"pattern_index": mapping.pattern_index},
            )
        pairs.append((pattern, mapping))
    return pairs


def _plan_spans(
    body: str, patterns: Sequence[Pattern], body_format: str
) -> tuple[dict[int, Span], dict[str, int]]:
    """Map pattern index -> body span, plus usable occurrence counts per marker."""

    groups: dict[str, list[Pattern]] = defaultdict(list)
    for pattern in sorted(patterns, key=lambda item: item.index):
        groups[pattern.raw_text].append(pattern)

    occurrences = {marker: _occurrences(body, marker, body_format) for marker in groups}

    spans: dict[int, Span] = {}
    found_counts: dict[str, int] = {}
    for marker, members in groups.items():
        usable = [
            span for span in occurrences[marker] if not _is_nested(span, marker, occurrences)
        ]
        found_counts[marker] = len(usable)
        if len(usable) != len(members):
            continue
        for pattern, span in zip(members, usable, strict=True):
            spans[pattern.index] = span
    return spans, found_counts


def _occurrences(body: str, marker: str, body_format: str) -> list[Span]:
    if body_format == "markup":
        escaped = escape(marker)
        if escaped != marker:
            found = [match.span() for match in _marker_regex(escaped).finditer(body)]
            if found:
                return found
    return [match.span() for match in _marker_regex(marker).finditer(body)]


def _is_nested(span: Span, marker: str, occurrences: dict[str, list[Span]]) -> bool:
    start, end = span
    for other, other_spans in occurrences.items():
        if other == marker:
            continue
        for other_start, other_end in other_spans:
            if other_start <= start and end <= other_end and other_end - other_start > end - start:
                return True
    return False


def _marker_regex(marker: str) -> re.Pattern[str]:
    literal = re.escape(marker)
    if len(set(marker)) == 1:
        char = re.escape(marker[0])
        # A run must not match inside a longer run of the same character.
        return re.compile(rf"(?<!{char}){literal}(?!{char})")
    return re.compile(literal)


def _entry(
    status: str,
    pattern: Pattern,
    mapping: FieldMapping,
    *,
    body_offset: int | None = None,
    reason: str | None = None,
) -> SubstitutionLogEntry:
    return SubstitutionLogEntry(
        status=status,
        pattern_index=pattern.index,
        field_key=mapping.field_key,
        marker=pattern.raw_text,
        body_offset=body_offset,
        needs_review=mapping.needs_review,
        reason=reason or mapping.reason,
    )
