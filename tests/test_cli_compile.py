from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from docx import Document
from typer.testing import CliRunner

from apps.cli.main import app

runner = CliRunner()

PROFILE = {"nome_completo": "Mario Rossi", "codice_fiscale": "RSSMRA80A01H501U"}


def _write_docx(path: Path) -> None:
    document = Document()
    document.add_paragraph("Il sottoscritto _____, C.F. _____")
    document.save(str(path))


def _write_profile(path: Path, payload: object = PROFILE) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


def _compile_args(document: Path, profile: Path, out_dir: Path, *extra: str) -> list[str]:
    return [
        "compile",
        "--document",
        str(document),
        "--profile",
        str(profile),
        "--out-dir",
        str(out_dir),
        "--no-classifier",
        *extra,
    ]


def test_cli_compile_docx_writes_four_outputs(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    out_dir = tmp_path / "out"
    _write_docx(document)
    _write_profile(profile)

    result = runner.invoke(app, _compile_args(document, profile, out_dir))

    assert result.exit_code == 0, result.output
    assert "compiled 2 of 2 fields; 0 need manual review" in result.output
    rewritten = Document(io.BytesIO((out_dir / "out.docx").read_bytes()))
    assert rewritten.paragraphs[0].text == "Il sottoscritto Mario Rossi, C.F. RSSMRA80A01H501U"
    mappings = json.loads((out_dir / "out.mappings.json").read_text(encoding="utf-8"))
    assert [item["field_key"] for item in mappings["mappings"]] == [
        "nome_completo",
        "codice_fiscale",
    ]
    assert mappings["patterns"][0]["pattern_type"] == "underscore_run"
    validation = json.loads((out_dir / "out.validation.json").read_text(encoding="utf-8"))
    assert validation["errors"] == []
    compilation = json.loads((out_dir / "out.compilation.json").read_text(encoding="utf-8"))
    assert compilation["compiled_count"] == 2
    assert "body" not in compilation


def test_cli_compile_text_document(tmp_path: Path) -> None:
    document = tmp_path / "modulo.txt"
    document.write_text("Il sottoscritto _____, C.F. _____", encoding="utf-8")
    profile = tmp_path / "profile.json"
    _write_profile(profile)

    result = runner.invoke(app, _compile_args(document, profile, tmp_path / "out"))

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "out.txt").read_text(encoding="utf-8") == (
        "Il sottoscritto Mario Rossi, C.F. RSSMRA80A01H501U"
    )


def test_cli_missing_required_returns_2_and_still_writes(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    out_dir = tmp_path / "out"
    _write_docx(document)
    _write_profile(profile)

    result = runner.invoke(
        app, _compile_args(document, profile, out_dir, "--required", "partita_iva")
    )

    assert result.exit_code == 2
    assert 'Required field "partita_iva" is not filled' in result.output
    assert (out_dir / "out.docx").exists()


def test_cli_strict_mode_skips_document_output(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    out_dir = tmp_path / "out"
    _write_docx(document)
    _write_profile(profile)

    result = runner.invoke(
        app, _compile_args(document, profile, out_dir, "--required", "partita_iva", "--strict")
    )

    assert result.exit_code == 2
    assert not (out_dir / "out.docx").exists()
    validation = json.loads((out_dir / "out.validation.json").read_text(encoding="utf-8"))
    assert validation["missing_required"] == ["partita_iva"]


def test_cli_refuses_to_overwrite_without_force(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    out_dir = tmp_path / "out"
    _write_docx(document)
    _write_profile(profile)
    out_dir.mkdir()
    (out_dir / "out.docx").write_bytes(b"old")

    refused = runner.invoke(app, _compile_args(document, profile, out_dir))
    forced = runner.invoke(app, _compile_args(document, profile, out_dir, "--force"))

    assert refused.exit_code == 1
    assert "use --force" in refused.output
    assert forced.exit_code == 0, forced.output
    assert "overwriting existing outputs: out.docx" in forced.output


def test_cli_manual_overrides_file(tmp_path: Path) -> None:
    document = tmp_path / "modulo.txt"
    document.write_text("Il sottoscritto _____, C.F. _____", encoding="utf-8")
    profile = tmp_path / "profile.json"
    overrides = tmp_path / "overrides.json"
    _write_profile(profile)
    overrides.write_text(json.dumps({"28": None}), encoding="utf-8")

    result = runner.invoke(
        app,
        _compile_args(document, profile, tmp_path / "out", "--overrides", str(overrides)),
    )

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "out.txt").read_text(encoding="utf-8") == (
        "Il sottoscritto Mario Rossi, C.F. _____"
    )


def test_cli_invalid_profile_writes_fallback_reports(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    out_dir = tmp_path / "out"
    _write_docx(document)
    _write_profile(profile, ["not", "an", "object"])

    result = runner.invoke(app, _compile_args(document, profile, out_dir))

    assert result.exit_code == 1
    assert "Profile JSON must be an object" in result.output
    validation = json.loads((out_dir / "out.validation.json").read_text(encoding="utf-8"))
    assert validation["error"]["stage"] == "load_profile"
    assert not (out_dir / "out.docx").exists()


def test_cli_rejects_unknown_log_level(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    profile = tmp_path / "profile.json"
    _write_docx(document)
    _write_profile(profile)

    result = runner.invoke(
        app, _compile_args(document, profile, tmp_path / "out", "--log-level", "loud")
    )

    assert result.exit_code == 1
    assert "--log-level must be one of" in result.output


def test_cli_without_api_key_warns_and_continues(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("DOCFILL_CLASSIFIER_API_KEY", raising=False)
    document = tmp_path / "modulo.txt"
    document.write_text("Firma _____", encoding="utf-8")
    profile = tmp_path / "profile.json"
    _write_profile(profile)

    result = runner.invoke(
        app,
        [
            "compile",
            "--document",
            str(document),
            "--profile",
            str(profile),
            "--out-dir",
            str(tmp_path / "out"),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "DOCFILL_CLASSIFIER_API_KEY is not set" in result.output
    assert "compiled 0 of 1 fields; 1 need manual review" in result.output


def test_cli_detect_lists_patterns_as_json(tmp_path: Path) -> None:
    document = tmp_path / "modulo.docx"
    _write_docx(document)

    result = runner.invoke(app, ["detect", "--document", str(document), "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [item["label"] for item in payload] == ["sottoscritto", "C.F."]
    assert {item["section"] for item in payload} == {"own"}


def test_cli_detect_human_output(tmp_path: Path) -> None:
    document = tmp_path / "modulo.txt"
    document.write_text("Nessun campo", encoding="utf-8")

    result = runner.invoke(app, ["detect", "--document", str(document)])

    assert result.exit_code == 0
    assert "no blank markers found" in result.output
