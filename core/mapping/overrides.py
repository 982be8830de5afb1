"""Manual override application for user-edited mappings."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from core.mapping.models import FieldMapping
from core.utils.errors import InputShapeError


def apply_manual_overrides(
    mappings: Sequence[FieldMapping],
    overrides: Mapping[int, str | None],
) -> list[FieldMapping]:
    """Replace mappings by user-provided values keyed by pattern index.

    A blank or None value forces the marker to stay untouched. The field key of
    the replaced mapping is preserved.
    """

    by_index = {mapping.pattern_index: mapping for mapping in mappings}
    unknown = sorted(set(overrides) - set(by_index))
    if unknown:
        raise InputShapeError(
            "Manual overrides reference unknown pattern indexes",
            detail={"unknown_pattern_indexes": unknown},
        )

    updated: list[FieldMapping] = []
    for mapping in mappings:
        if mapping.pattern_index not in overrides:
            updated.append(mapping)
            continue

        value = (overrides[mapping.pattern_index] or "").strip()
        updated.append(
            FieldMapping(
                pattern_index=mapping.pattern_index,
                field_key=mapping.field_key,
                value=value,
                should_compile=bool(value),
                confidence=1.0,
                source="manual_override",
                reason="manual_override",
            )
        )
    return updated
