"""Field mapping models shared by resolver, classifier, validator and recompiler."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.patterns.models import Pattern

MappingSource = Literal["deterministic", "classifier", "manual_override"]


class FieldMapping(BaseModel):
    """Resolution of one pattern to a fill-or-skip decision.

    ``pattern_index`` is the document offset (``Pattern.index``) of the
    resolved marker.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern_index: int
    field_key: str | None = None
    value: str = ""
    should_compile: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    source: MappingSource
    needs_review: bool = False
    reason: str | None = None

    @model_validator(mode="after")
    def _check_value_matches_compile_flag(self) -> FieldMapping:
        if self.should_compile and not self.value:
            raise ValueError("should_compile requires a non-empty value")
        if not self.should_compile and self.value:
            raise ValueError("a skipped mapping must have an empty value")
        return self

    @classmethod
    def skipped(
        cls,
        pattern: Pattern,
        *,
        source: MappingSource,
        confidence: float,
        field_key: str | None = None,
        reason: str | None = None,
    ) -> FieldMapping:
        """Mapping that leaves the marker untouched."""

        return cls(
            pattern_index=pattern.index,
            field_key=field_key,
            value="",
            should_compile=False,
            confidence=confidence,
            source=source,
            reason=reason,
        )

    @classmethod
    def review_required(
        cls,
        pattern: Pattern,
        *,
        reason: str,
        source: MappingSource = "classifier",
        field_key: str | None = None,
    ) -> FieldMapping:
        """Zero-confidence mapping flagged for manual review."""

        return cls(
            pattern_index=pattern.index,
            field_key=field_key,
            value="",
            should_compile=False,
            confidence=0.0,
            source=source,
            needs_review=True,
            reason=reason,
        )
