"""Typer CLI entrypoint for docfill-agent."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Annotated, Any

import typer

from apps.cli.format_human import render_compile_summary, render_pattern_table
from apps.cli.io import (
    OutputPaths,
    build_output_paths,
    existing_output_files,
    write_document_atomic,
    write_fallback_json_atomic,
    write_reports_atomic,
)
from core.classifier.client import BatchClassifier
from core.classifier.transport import HttpClassifierTransport
from core.config.loader import classifier_api_key, load_settings
from core.config.models import EngineSettings
from core.orchestrator.pipeline import PipelineOutput, compile_document
from core.patterns.extractor import extract_patterns
from core.patterns.sections import assign_sections
from core.render.models import BodyFormat
from core.utils.docx_xml import extract_docx_text, read_document_xml, replace_document_xml
from core.utils.errors import MissingRequiredFieldsError

app = typer.Typer(help="Document fill CLI", rich_markup_mode=None)
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands as explicit command form."""


@app.command("detect")
def detect_command(
    document: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    settings: Annotated[Path | None, typer.Option()] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print patterns as JSON.")] = False,
) -> None:
    """List the blank markers found in a document."""

    try:
        engine_settings = load_settings(settings)
        text = _read_document(document)[0]
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=1) from None

    patterns = extract_patterns(text, context_window=engine_settings.extraction.context_window)
    patterns = assign_sections(patterns, text, engine_settings.sections.to_rules())

    if as_json:
        payload = [
            {
                "index": pattern.index,
                "type": pattern.pattern_type.value,
                "raw_text": pattern.raw_text,
                "label": pattern.label,
                "section": pattern.section,
            }
            for pattern in patterns
        ]
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        typer.echo(render_pattern_table(patterns))


@app.command("compile")
def compile_command(
    document: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    profile: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    required: Annotated[
        list[str] | None,
        typer.Option("--required", help="Profile key that must be filled (repeatable)."),
    ] = None,
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    settings: Annotated[Path | None, typer.Option()] = None,
    overrides: Annotated[
        Path | None,
        typer.Option(help="JSON object of pattern index -> value (null keeps the marker)."),
    ] = None,
    no_classifier: Annotated[
        bool,
        typer.Option("--no-classifier", help="Resolve deterministically only."),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option(
            "--strict", help="Do not write the document when required fields are missing."
        ),
    ] = False,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite outputs when they already exist.")
    ] = False,
    log_level: Annotated[str, typer.Option()] = "WARNING",
) -> None:
    """Fill the blanks of one document and write fixed output artifacts."""

    is_text = document.suffix.lower() == ".txt"
    paths = build_output_paths(out_dir, document_suffix=".txt" if is_text else ".docx")

    normalized_level = log_level.upper().strip()
    if normalized_level not in LOG_LEVELS:
        typer.echo(f"ERROR: --log-level must be one of: {', '.join(LOG_LEVELS)}.")
        raise typer.Exit(code=1)
    logging.basicConfig(level=normalized_level, format="%(levelname)s %(name)s %(message)s")

    existing = existing_output_files(paths)
    if existing and not force:
        names = ", ".join(path.name for path in existing)
        typer.echo(f"ERROR: outputs already exist ({names}); use --force to overwrite.")
        raise typer.Exit(code=1)
    if existing:
        typer.echo(f"INFO: overwriting existing outputs: {', '.join(p.name for p in existing)}")

    output: PipelineOutput | None = None
    document_bytes: bytes | None = None
    write_document = True
    failure_stage = "unknown"

    try:
        failure_stage = "load_settings"
        engine_settings = load_settings(settings)
        failure_stage = "load_profile"
        profile_data = _load_profile(profile)
        failure_stage = "load_overrides"
        manual_overrides = _load_overrides(overrides) if overrides is not None else None
        failure_stage = "load_document"
        text, body, body_format, document_bytes = _read_document(document)
        failure_stage = "pipeline"
        output = asyncio.run(
            _run_pipeline(
                text,
                body,
                profile_data,
                settings=engine_settings,
                use_classifier=not no_classifier,
                required_field_keys=required or [],
                body_format=body_format,
                manual_overrides=manual_overrides,
                strict=strict,
            )
        )
    except MissingRequiredFieldsError as exc:
        output = exc.output
        write_document = False
        typer.echo("ERROR: missing required fields; document not written (--strict)")
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        _safe_write_fallback(paths, type(exc).__name__, str(exc), failure_stage)
        raise typer.Exit(code=1) from None

    if output is None:
        _safe_write_fallback(paths, "UnknownError", "pipeline returned no output", failure_stage)
        raise typer.Exit(code=1)

    typer.echo(render_compile_summary(output))

    try:
        write_reports_atomic(paths, output)
        if write_document:
            write_document_atomic(paths.document, _document_payload(output, document_bytes))
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: write output failed: {exc}")
        raise typer.Exit(code=1) from None

    if not output.validation.valid:
        raise typer.Exit(code=2)
    typer.echo("INFO: success")


async def _run_pipeline(
    text: str,
    body: str,
    profile: dict[str, Any],
    *,
    settings: EngineSettings,
    use_classifier: bool,
    required_field_keys: list[str],
    body_format: BodyFormat,
    manual_overrides: dict[int, str | None] | None,
    strict: bool,
) -> PipelineOutput:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        # First Ctrl-C stops dispatching new classifier batches.
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    options: dict[str, Any] = {
        "required_field_keys": required_field_keys,
        "settings": settings,
        "cancel_event": cancel_event,
        "body_format": body_format,
        "manual_overrides": manual_overrides,
        "fail_on_validation_errors": strict,
    }
    try:
        if not use_classifier:
            return await compile_document(text, body, profile, **options)
        api_key = classifier_api_key(settings)
        if api_key is None:
            typer.echo(
                f"WARNING: {settings.classifier.api_key_env} is not set; "
                "unresolved fields need manual review."
            )
            return await compile_document(text, body, profile, **options)

        async with HttpClassifierTransport(
            endpoint=settings.classifier.endpoint,
            model=settings.classifier.model,
            api_key=api_key,
            temperature=settings.classifier.temperature,
            max_tokens=settings.classifier.max_tokens,
        ) as transport:
            classifier = BatchClassifier(
                transport,
                settings=settings.classifier,
                placeholders=settings.profile.placeholder_values,
            )
            return await compile_document(
                text, body, profile, classifier=classifier, **options
            )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _read_document(path: Path) -> tuple[str, str, BodyFormat, bytes | None]:
    if path.suffix.lower() == ".txt":
        text = path.read_text(encoding="utf-8")
        return text, text, "text", None

    raw = path.read_bytes()
    return extract_docx_text(raw), read_document_xml(raw), "markup", raw


def _document_payload(output: PipelineOutput, document_bytes: bytes | None) -> bytes:
    if document_bytes is None:
        return output.compilation.body.encode("utf-8")
    return replace_document_xml(document_bytes, output.compilation.body)


def _load_profile(path: Path) -> dict[str, Any]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Profile JSON must be an object")
    return {
        str(key): value
        for key, value in raw.items()
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    }


def _load_overrides(path: Path) -> dict[int, str | None]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Overrides JSON must be an object")

    parsed: dict[int, str | None] = {}
    for key, value in raw.items():
        try:
            index = int(key)
        except ValueError as exc:
            raise ValueError(f"Override key is not a pattern index: {key!r}") from exc
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Override value for {index} must be a string or null")
        parsed[index] = value
    return parsed


def _safe_write_fallback(
    paths: OutputPaths, error_type: str, error_message: str, stage: str
) -> None:
    try:
        write_fallback_json_atomic(
            paths, error_type=error_type, error_message=error_message, stage=stage
        )
    except OSError as exc:
        typer.echo(f"ERROR: fallback report write failed: {exc}")


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
