"""Mapping validation: required fields and low-confidence decisions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from core.mapping.models import FieldMapping
from core.patterns.models import Pattern
from core.validate.models import ValidationReport

LOW_CONFIDENCE_THRESHOLD = 0.5


def validate_mappings(
    mappings: Sequence[FieldMapping],
    required_field_keys: Iterable[str],
    patterns: Sequence[Pattern] | None = None,
) -> ValidationReport:
    """Check ``mappings`` against ``required_field_keys``.

    ``patterns`` is optional and only used to name markers in warnings.
    The report is always returned; this function does not raise for data issues.
    """

    names = {pattern.index: pattern.display_name() for pattern in patterns or ()}
    filled_keys = {
        mapping.field_key for mapping in mappings if mapping.field_key and mapping.value
    }

    report = ValidationReport()
    seen_required: set[str] = set()
    for key in required_field_keys:
        if key in seen_required:
            continue
        seen_required.add(key)
        if key not in filled_keys:
            report.missing_required.append(key)
            report.errors.append(f'Required field "{key}" is not filled')

    for mapping in mappings:
        name = names.get(mapping.pattern_index) or mapping.field_key or f"@{mapping.pattern_index}"
        if mapping.confidence < LOW_CONFIDENCE_THRESHOLD and not mapping.value:
            percent = round(mapping.confidence * 100)
            report.warnings.append(
                f'Low confidence ({percent}%) for "{name}": no value decided; check manually'
            )
        if mapping.field_key and not mapping.value:
            report.warnings.append(
                f'Field "{name}" maps to "{mapping.field_key}" but the profile has no value for it'
            )
    return report
