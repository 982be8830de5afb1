"""Recompilation report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BodyFormat = Literal["markup", "text"]


class SubstitutionLogEntry(BaseModel):
    """Single replaced/skipped/not-found log item."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["replaced", "skipped", "not_found"]
    pattern_index: int
    field_key: str | None = None
    marker: str
    body_offset: int | None = None
    needs_review: bool = False
    reason: str | None = None


class CompilationResult(BaseModel):
    """Rewritten serialized body plus substitution counters."""

    model_config = ConfigDict(extra="forbid")

    body: str
    body_format: BodyFormat = "markup"
    compiled_count: int = 0
    skipped_count: int = 0
    not_found_count: int = 0
    needs_review_count: int = 0
    entries: list[SubstitutionLogEntry] = Field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.compiled_count + self.skipped_count + self.not_found_count

    def summary_line(self) -> str:
        return (
            f"compiled {self.compiled_count} of {self.total_count} fields; "
            f"{self.needs_review_count} need manual review"
        )
