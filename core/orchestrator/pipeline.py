"""Orchestration pipeline: extract -> resolve -> classify -> validate -> recompile."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from core.classifier.client import BatchClassifier
from core.config.models import EngineSettings
from core.mapping.models import FieldMapping
from core.mapping.overrides import apply_manual_overrides
from core.mapping.resolver import ResolverResult, resolve_deterministic
from core.patterns.extractor import extract_patterns
from core.patterns.models import Pattern
from core.patterns.sections import assign_sections
from core.render.models import BodyFormat, CompilationResult
from core.render.recompiler import BODY_FORMATS, recompile
from core.utils.errors import InputShapeError, MissingRequiredFieldsError
from core.utils.log_events import log_event
from core.validate.models import ValidationReport
from core.validate.validator import validate_mappings

logger = logging.getLogger("docfill.pipeline")


class PipelineOutput(BaseModel):
    """In-memory output of one document compilation."""

    model_config = ConfigDict(extra="forbid")

    patterns: list[Pattern]
    mappings: list[FieldMapping]
    classification_issues: list[str] = Field(default_factory=list)
    cancelled: bool = False
    validation: ValidationReport
    compilation: CompilationResult


async def compile_document(
    text: str,
    serialized_body: str,
    profile: Mapping[str, object],
    *,
    classifier: BatchClassifier | None = None,
    required_field_keys: Iterable[str] = (),
    settings: EngineSettings | None = None,
    cancel_event: asyncio.Event | None = None,
    body_format: BodyFormat = "markup",
    manual_overrides: Mapping[int, str | None] | None = None,
    fail_on_validation_errors: bool = False,
) -> PipelineOutput:
    """Fill the blanks of one document from ``profile``.

    ``text`` is the plain document text used for detection; ``serialized_body``
    is the body that gets rewritten. Classifier failures and missing markers
    degrade to review mappings and counters. Only input-shape problems raise,
    plus ``MissingRequiredFieldsError`` when ``fail_on_validation_errors`` is set.
    """

    if body_format not in BODY_FORMATS:
        raise InputShapeError(f"Unsupported body format: {body_format}")
    engine_settings = settings or EngineSettings()
    placeholders = frozenset(engine_settings.profile.placeholder_values)

    patterns = extract_patterns(text, context_window=engine_settings.extraction.context_window)
    patterns = assign_sections(patterns, text, engine_settings.sections.to_rules())

    resolved = resolve_deterministic(patterns, profile, placeholders=placeholders)
    classified, issues, cancelled = await _classify_unresolved(
        resolved, profile, classifier, cancel_event
    )

    mappings = sorted(
        [*resolved.mapped, *classified], key=lambda mapping: mapping.pattern_index
    )
    if manual_overrides:
        mappings = apply_manual_overrides(mappings, manual_overrides)

    validation = validate_mappings(mappings, required_field_keys, patterns)
    compilation = recompile(serialized_body, patterns, mappings, body_format=body_format)

    output = PipelineOutput(
        patterns=patterns,
        mappings=mappings,
        classification_issues=issues,
        cancelled=cancelled,
        validation=validation,
        compilation=compilation,
    )
    log_event(
        logger,
        logging.INFO,
        "compile_done",
        patterns=len(patterns),
        deterministic=len(resolved.mapped),
        unresolved=len(resolved.unresolved),
        compiled=compilation.compiled_count,
        skipped=compilation.skipped_count,
        not_found=compilation.not_found_count,
        needs_review=compilation.needs_review_count,
        errors=len(validation.errors),
        warnings=len(validation.warnings),
        cancelled=cancelled,
    )

    if fail_on_validation_errors and validation.errors:
        raise MissingRequiredFieldsError(
            "Missing required fields",
            missing_required=validation.missing_required,
            output=output,
        )
    return output


async def _classify_unresolved(
    resolved: ResolverResult,
    profile: Mapping[str, object],
    classifier: BatchClassifier | None,
    cancel_event: asyncio.Event | None,
) -> tuple[list[FieldMapping], list[str], bool]:
    unresolved = resolved.unresolved
    if not unresolved:
        return [], [], False

    if cancel_event is not None and cancel_event.is_set():
        return _fallback_mappings(unresolved, resolved, "cancelled"), [], True
    if classifier is None:
        return _fallback_mappings(unresolved, resolved, "classifier_unavailable"), [], False

    result = await classifier.classify_batch(unresolved, profile, cancel_event=cancel_event)
    if len(result.mappings) != len(unresolved):
        raise InputShapeError(
            "Classifier returned a mapping count different from its input",
            detail={"patterns": len(unresolved), "mappings": len(result.mappings)},
        )

    merged: list[FieldMapping] = []
    for pattern, mapping in zip(unresolved, result.mappings, strict=True):
        tentative = resolved.tentative.get(pattern.index)
        if mapping.should_compile or tentative is None:
            merged.append(mapping)
            continue
        merged.append(_flag_for_review(tentative, mapping.reason))
    return merged, list(result.issues), result.cancelled


def _fallback_mappings(
    patterns: Sequence[Pattern], resolved: ResolverResult, reason: str
) -> list[FieldMapping]:
    mappings: list[FieldMapping] = []
    for pattern in patterns:
        tentative = resolved.tentative.get(pattern.index)
        if tentative is not None:
            mappings.append(_flag_for_review(tentative, reason))
        else:
            mappings.append(
                FieldMapping.review_required(pattern, reason=reason, source="deterministic")
            )
    return mappings


def _flag_for_review(tentative: FieldMapping, reason: str | None) -> FieldMapping:
    combined = tentative.reason if not reason else f"{tentative.reason}; {reason}"
    return tentative.model_copy(update={"needs_review": True, "reason": combined})
