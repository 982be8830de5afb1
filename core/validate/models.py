"""Validation report models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ValidationReport(BaseModel):
    """Blocking errors and advisory warnings for one mapping list."""

    model_config = ConfigDict(extra="forbid")

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors
