"""Settings loading utilities."""

from __future__ import annotations

import os
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.config.models import EngineSettings

_ENDPOINT_ENV = "DOCFILL_CLASSIFIER_URL"


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings from YAML."""

    settings_path = path or Path(__file__).with_name("settings.yaml")

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        settings = EngineSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc

    endpoint_override = os.getenv(_ENDPOINT_ENV)
    if endpoint_override:
        settings.classifier.endpoint = endpoint_override
    return settings


def classifier_api_key(settings: EngineSettings) -> str | None:
    """Read the classifier API key from the configured environment variable."""

    value = os.getenv(settings.classifier.api_key_env, "").strip()
    return value or None
