from __future__ import annotations

from pathlib import Path

import pytest

from core.config.loader import classifier_api_key, load_settings


def test_load_default_settings() -> None:
    settings = load_settings()

    assert settings.extraction.context_window == 200
    assert settings.classifier.batch_size == 80
    assert settings.classifier.min_interval_seconds == 1.2
    assert settings.classifier.temperature == 0.0
    assert "stazione appaltante" in settings.sections.counterparty_keywords
    assert "N/A" in settings.profile.placeholder_values


def test_partial_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("classifier:\n  batch_size: 20\n", encoding="utf-8")

    settings = load_settings(path)

    assert settings.classifier.batch_size == 20
    assert settings.classifier.max_attempts == 3
    assert settings.extraction.context_window == 200


def test_empty_settings_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("", encoding="utf-8")

    assert load_settings(path).classifier.model == "gpt-4o-mini"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("classifier:\n  batch_size: 500\n", "Invalid settings schema"),
        ("classifier:\n  unknown_option: 1\n", "Invalid settings schema"),
        ("- just\n- a list\n", "must contain a mapping"),
        ("classifier: [unclosed\n", "Invalid YAML"),
    ],
)
def test_invalid_settings_raise_value_error(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        load_settings(path)


def test_missing_settings_file_raises_value_error(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Settings file not found"):
        load_settings(tmp_path / "missing.yaml")


def test_environment_overrides_endpoint_and_provides_api_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DOCFILL_CLASSIFIER_URL", "http://localhost:9000/v1/chat/completions")
    monkeypatch.setenv("DOCFILL_CLASSIFIER_API_KEY", "  key-123  ")

    settings = load_settings()

    assert settings.classifier.endpoint == "http://localhost:9000/v1/chat/completions"
    assert classifier_api_key(settings) == "key-123"


def test_blank_api_key_is_treated_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCFILL_CLASSIFIER_API_KEY", "   ")

    assert classifier_api_key(load_settings()) is None
