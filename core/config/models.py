"""Engine settings models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from core.mapping.profile import PLACEHOLDER_VALUES
from core.patterns.extractor import DEFAULT_CONTEXT_WINDOW
from core.patterns.sections import COUNTERPARTY_KEYWORDS, OWN_PARTY_KEYWORDS, SectionRules


class ExtractionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    context_window: int = Field(default=DEFAULT_CONTEXT_WINDOW, ge=0, le=2000)


class ProfileSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    placeholder_values: list[str] = Field(default_factory=lambda: sorted(PLACEHOLDER_VALUES))


class SectionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    counterparty_keywords: list[str] = Field(default_factory=lambda: list(COUNTERPARTY_KEYWORDS))
    own_party_keywords: list[str] = Field(default_factory=lambda: list(OWN_PARTY_KEYWORDS))

    def to_rules(self) -> SectionRules:
        return SectionRules(
            counterparty_keywords=tuple(self.counterparty_keywords),
            own_party_keywords=tuple(self.own_party_keywords),
        )


class ClassifierSettings(BaseModel):
    """External semantic classifier client settings."""

    model_config = ConfigDict(extra="forbid")

    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    api_key_env: str = "DOCFILL_CLASSIFIER_API_KEY"
    batch_size: int = Field(default=80, ge=1, le=80)
    min_interval_seconds: float = Field(default=1.2, ge=0.0)
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    timeout_seconds: float = Field(default=60.0, gt=0.0)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=16000, ge=1)
    context_chars: int = Field(default=100, ge=0)
    max_concurrent_batches: int = Field(default=4, ge=1)


class EngineSettings(BaseModel):
    """Top-level settings for one compilation engine instance."""

    model_config = ConfigDict(extra="forbid")

    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    sections: SectionSettings = Field(default_factory=SectionSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
