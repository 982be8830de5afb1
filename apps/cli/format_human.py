"""Human-readable compile and detection summaries for CLI output."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from core.orchestrator.pipeline import PipelineOutput
from core.patterns.models import Pattern

_MAX_LISTED_WARNINGS = 10


def render_compile_summary(output: PipelineOutput) -> str:
    """Render one-screen human-readable compile summary."""

    compilation = output.compilation
    validation = output.validation

    lines: list[str] = []
    lines.append("compile_summary:")
    lines.append(f"patterns={len(output.patterns)} {_source_counts(output)}")
    lines.append(f"result={'OK' if validation.valid else 'BLOCKED'}")
    lines.append(compilation.summary_line())
    if compilation.not_found_count:
        lines.append(
            f"not_found={compilation.not_found_count} (marker text split or missing in body)"
        )
    if output.cancelled:
        lines.append("classification cancelled: remaining fields need manual review")
    if output.classification_issues:
        lines.append(f"classifier_issues={len(output.classification_issues)}")

    if validation.errors:
        lines.append("errors:")
        lines.extend(f"  - {message}" for message in validation.errors)

    if validation.warnings:
        lines.append(f"warnings ({len(validation.warnings)}):")
        lines.extend(f"  - {message}" for message in validation.warnings[:_MAX_LISTED_WARNINGS])
        hidden = len(validation.warnings) - _MAX_LISTED_WARNINGS
        if hidden > 0:
            lines.append(f"  ... {hidden} more in out.validation.json")

    return "\n".join(lines)


def render_pattern_table(patterns: Sequence[Pattern]) -> str:
    """Render detected patterns, one per line."""

    if not patterns:
        return "no blank markers found"

    lines = [f"patterns={len(patterns)}"]
    for pattern in patterns:
        label = pattern.label or "-"
        section = pattern.section or "-"
        lines.append(
            f"{pattern.index:>7}  {pattern.pattern_type.value:<18} "
            f"{section:<12} {label}  {pattern.raw_text!r}"
        )
    return "\n".join(lines)


def _source_counts(output: PipelineOutput) -> str:
    counter: Counter[str] = Counter(mapping.source for mapping in output.mappings)
    if not counter:
        return "sources: none"
    return "sources: " + ", ".join(f"{source}={counter[source]}" for source in sorted(counter))
