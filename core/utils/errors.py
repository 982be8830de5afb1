"""Custom exceptions for core logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.orchestrator.pipeline import PipelineOutput


class InputShapeError(ValueError):
    """Raised when pipeline inputs are structurally incompatible (programmer error)."""

    def __init__(self, message: str, *, detail: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class ClassifierTransportError(Exception):
    """Raised by classifier transports when a request cannot produce a response text."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingRequiredFieldsError(Exception):
    """Raised when required fields stay unfilled and the caller asked for strict gating."""

    def __init__(
        self,
        message: str,
        *,
        missing_required: list[str],
        output: PipelineOutput | None = None,
    ) -> None:
        super().__init__(message)
        self.missing_required = missing_required
        self.output = output
