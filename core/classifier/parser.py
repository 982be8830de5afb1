"""Lenient parsing of classifier responses into field mappings.

Rules:
- Markdown code fences and surrounding prose are tolerated; the first ``[``
  from which a JSON array decodes is used.
- A response without such an array, or whose length differs from the batch,
  is a failed batch.
- Individual malformed elements only degrade their own pattern.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from core.mapping.models import FieldMapping
from core.patterns.models import Pattern

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_FIELD_KEYS = ("field_identified", "profile_field", "field")
_COMPILE_KEYS = ("compile", "should_compile")


@dataclass(frozen=True)
class ClassifierEntry:
    """One normalized element of a classifier response."""

    field_key: str | None
    should_compile: bool
    value: str
    confidence: float
    issue: str | None = None


@dataclass
class ParseOutcome:
    ok: bool
    entries: list[ClassifierEntry] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    failure_reason: str | None = None


def parse_classifier_response(text: str, expected_count: int) -> ParseOutcome:
    """Parse a raw classifier answer for a batch of ``expected_count`` patterns."""

    items = _find_json_array(_FENCE_RE.sub("", text))
    if items is None:
        return ParseOutcome(
            ok=False,
            issues=["classifier response contains no JSON array"],
            failure_reason="parse_error",
        )

    if len(items) != expected_count:
        return ParseOutcome(
            ok=False,
            issues=[
                f"classifier returned {len(items)} elements for a batch of {expected_count}"
            ],
            failure_reason="length_mismatch",
        )

    ordered = _order_by_pattern_index(items)
    outcome = ParseOutcome(ok=True)
    for position, item in enumerate(ordered):
        entry = _normalize_entry(item)
        if entry.issue is not None:
            outcome.issues.append(f"element {position}: {entry.issue}")
        outcome.entries.append(entry)
    return outcome


def entries_to_mappings(
    patterns: Sequence[Pattern], entries: Sequence[ClassifierEntry]
) -> list[FieldMapping]:
    """Turn parsed entries (aligned with ``patterns``) into classifier mappings."""

    if len(patterns) != len(entries):
        raise ValueError("patterns and entries must have the same length")

    mappings: list[FieldMapping] = []
    for pattern, entry in zip(patterns, entries, strict=True):
        if entry.issue is not None:
            mappings.append(
                FieldMapping.review_required(
                    pattern, reason=entry.issue, field_key=entry.field_key
                )
            )
            continue
        if entry.should_compile:
            mappings.append(
                FieldMapping(
                    pattern_index=pattern.index,
                    field_key=entry.field_key,
                    value=entry.value,
                    should_compile=True,
                    confidence=entry.confidence,
                    source="classifier",
                )
            )
            continue
        mappings.append(
            FieldMapping.skipped(
                pattern,
                source="classifier",
                field_key=entry.field_key,
                confidence=entry.confidence,
                reason="classifier_skip",
            )
        )
    return mappings


def _find_json_array(text: str) -> list[Any] | None:
    decoder = json.JSONDecoder()
    position = text.find("[")
    while position != -1:
        try:
            value, _end = decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return value
        position = text.find("[", position + 1)
    return None


def _order_by_pattern_index(items: list[Any]) -> list[Any]:
    indexes: list[int] = []
    for item in items:
        raw_index = item.get("pattern_index") if isinstance(item, dict) else None
        if not isinstance(raw_index, int) or isinstance(raw_index, bool):
            return items
        indexes.append(raw_index)

    if sorted(indexes) != list(range(len(items))):
        return items
    ordered: list[Any] = [None] * len(items)
    for raw_index, item in zip(indexes, items, strict=True):
        ordered[raw_index] = item
    return ordered


def _normalize_entry(item: Any) -> ClassifierEntry:
    if not isinstance(item, dict):
        return ClassifierEntry(
            field_key=None,
            should_compile=False,
            value="",
            confidence=0.0,
            issue="element is not an object",
        )

    field_key = _first_string(item, _FIELD_KEYS)
    compile_flag: bool | None = None
    for key in _COMPILE_KEYS:
        if isinstance(item.get(key), bool):
            compile_flag = item[key]
            break

    combined = item.get("compile_or_field")
    if isinstance(combined, bool) and compile_flag is None:
        compile_flag = combined
    elif isinstance(combined, str) and combined.strip() and field_key is None:
        field_key = combined.strip()

    value = _coerce_value(item.get("value"))
    confidence = _coerce_confidence(item.get("confidence"))

    if compile_flag is None:
        compile_flag = bool(value) and field_key is not None

    if compile_flag and not value:
        return ClassifierEntry(
            field_key=field_key,
            should_compile=False,
            value="",
            confidence=0.0,
            issue="compile requested without a value",
        )
    if not compile_flag:
        value = ""

    return ClassifierEntry(
        field_key=field_key,
        should_compile=compile_flag,
        value=value,
        confidence=confidence,
    )


def _first_string(item: dict[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _coerce_value(raw: Any) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, (str, int, float)):
        return str(raw).strip()
    return ""


def _coerce_confidence(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    if raw != raw:  # NaN
        return 0.0
    return min(1.0, max(0.0, float(raw)))
