"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.orchestrator.pipeline import PipelineOutput


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for single run."""

    document: Path
    mappings: Path
    validation: Path
    compilation: Path

    def reports(self) -> list[Path]:
        return [self.mappings, self.validation, self.compilation]


def build_output_paths(out_dir: Path, *, document_suffix: str = ".docx") -> OutputPaths:
    """Build fixed output file paths under out_dir."""

    return OutputPaths(
        document=out_dir / f"out{document_suffix}",
        mappings=out_dir / "out.mappings.json",
        validation=out_dir / "out.validation.json",
        compilation=out_dir / "out.compilation.json",
    )


def existing_output_files(paths: OutputPaths) -> list[Path]:
    """Return existing output files among fixed artifact paths."""

    return [path for path in [paths.document, *paths.reports()] if path.exists()]


def write_reports_atomic(paths: OutputPaths, output: PipelineOutput) -> None:
    """Write the three JSON reports atomically using temporary files + replace."""

    paths.mappings.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(
        paths.mappings,
        output.model_dump(
            mode="json", include={"patterns", "mappings", "classification_issues", "cancelled"}
        ),
    )
    _atomic_write_json(paths.validation, output.validation.model_dump(mode="json"))
    _atomic_write_json(paths.compilation, _compilation_payload(output))


def write_document_atomic(path: Path, payload: bytes) -> None:
    """Write the rewritten document bytes atomically."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(raw_tmp_path)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise


def write_fallback_json_atomic(
    paths: OutputPaths,
    *,
    error_type: str,
    error_message: str,
    stage: str,
) -> None:
    """Write minimal JSON reports with required error metadata."""

    error_block = {
        "error_type": error_type,
        "error_message": error_message,
        "stage": stage,
    }
    paths.mappings.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(
        paths.mappings,
        {"patterns": [], "mappings": [], "classification_issues": [], "error": error_block},
    )
    _atomic_write_json(
        paths.validation,
        {"errors": [], "warnings": [], "missing_required": [], "error": error_block},
    )
    _atomic_write_json(
        paths.compilation,
        {"compiled_count": 0, "skipped_count": 0, "not_found_count": 0, "error": error_block},
    )


def _compilation_payload(output: PipelineOutput) -> dict[str, Any]:
    payload = output.compilation.model_dump(mode="json", exclude={"body"})
    payload["summary"] = output.compilation.summary_line()
    return payload


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, indent=2)

    tmp_path.replace(path)
