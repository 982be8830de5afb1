from __future__ import annotations

import asyncio
import json
import logging
import xml.etree.ElementTree as ET

import pytest

from core.classifier.client import BatchClassifier
from core.classifier.prompt import ClassificationRequest
from core.classifier.rate_limiter import IntervalRateLimiter
from core.config.models import ClassifierSettings
from core.orchestrator.pipeline import compile_document
from core.utils.errors import InputShapeError, MissingRequiredFieldsError

PROFILE = {"nome_completo": "Mario Rossi", "codice_fiscale": "RSSMRA80A01H501U"}


class FakeTransport:
    def __init__(self, answers: dict[int, dict[str, object]]) -> None:
        self._answers = answers
        self.requests: list[ClassificationRequest] = []

    async def complete(self, request: ClassificationRequest) -> str:
        self.requests.append(request)
        return json.dumps(
            [
                {"pattern_index": item.index, **self._answers[item.offset]}
                for item in request.batch_items
            ]
        )


def _classifier(transport: FakeTransport) -> BatchClassifier:
    return BatchClassifier(
        transport,
        settings=ClassifierSettings(min_interval_seconds=0.0),
        rate_limiter=IntervalRateLimiter(0.0),
    )


@pytest.mark.anyio
async def test_sottoscritto_scenario_fills_both_fields() -> None:
    text = "Il sottoscritto _____, C.F. _____"

    output = await compile_document(text, text, PROFILE, body_format="text")

    first, second = output.mappings
    assert output.patterns[0].label == "sottoscritto"
    assert (first.field_key, first.value, first.should_compile) == (
        "nome_completo",
        "Mario Rossi",
        True,
    )
    assert output.patterns[1].label == "C.F."
    assert (second.field_key, second.value, second.should_compile) == (
        "codice_fiscale",
        "RSSMRA80A01H501U",
        True,
    )
    assert output.compilation.body == "Il sottoscritto Mario Rossi, C.F. RSSMRA80A01H501U"
    assert output.validation.valid


@pytest.mark.anyio
async def test_markup_body_is_rewritten_and_stays_well_formed() -> None:
    text = "Il sottoscritto _____\nC.F. _____"
    body = (
        "<doc><p><t>Il sottoscritto _____</t></p>"
        "<p><t>C.F. _____</t></p></doc>"
    )
    profile = {"nome_completo": "Rossi & Bianchi <srl>", "codice_fiscale": "RSS"}

    output = await compile_document(text, body, profile)

    texts = [node.text for node in ET.fromstring(output.compilation.body).iter("t")]
    assert texts == ["Il sottoscritto Rossi & Bianchi <srl>", "C.F. RSS"]


@pytest.mark.anyio
async def test_classifier_completes_unresolved_and_falls_back_to_tentative() -> None:
    text = "Il sottoscritto _____, C.F. _____, firma _____"
    transport = FakeTransport(
        {
            28: {"field_identified": "codice_fiscale", "compile": False, "value": ""},
            41: {"field_identified": "firma", "compile": True, "value": "M. Rossi",
                 "confidence": 0.75},
        }
    )

    output = await compile_document(
        text,
        text,
        {"nome_completo": "Mario Rossi"},
        classifier=_classifier(transport),
        required_field_keys=["codice_fiscale"],
        body_format="text",
    )

    assert [item.offset for item in transport.requests[0].batch_items] == [28, 41]
    by_index = {mapping.pattern_index: mapping for mapping in output.mappings}
    assert by_index[16].source == "deterministic"
    assert by_index[28].field_key == "codice_fiscale"
    assert by_index[28].needs_review is True
    assert by_index[28].confidence == pytest.approx(0.5)
    assert by_index[41].source == "classifier"
    assert output.compilation.body == "Il sottoscritto Mario Rossi, C.F. _____, firma M. Rossi"
    assert output.validation.errors == ['Required field "codice_fiscale" is not filled']
    assert 'Field "C.F." maps to "codice_fiscale" but the profile has no value for it' in (
        output.validation.warnings
    )
    assert output.compilation.summary_line() == "compiled 2 of 3 fields; 1 need manual review"


@pytest.mark.anyio
async def test_without_classifier_unresolved_patterns_need_review() -> None:
    text = "Firma _____"

    output = await compile_document(text, text, PROFILE, body_format="text")

    (mapping,) = output.mappings
    assert mapping.should_compile is False
    assert mapping.needs_review is True
    assert mapping.reason == "classifier_unavailable"
    assert output.compilation.body == text


@pytest.mark.anyio
async def test_cancelled_request_skips_classification() -> None:
    transport = FakeTransport({})
    cancel_event = asyncio.Event()
    cancel_event.set()

    output = await compile_document(
        "Firma _____",
        "Firma _____",
        PROFILE,
        classifier=_classifier(transport),
        cancel_event=cancel_event,
        body_format="text",
    )

    assert transport.requests == []
    assert output.cancelled is True
    assert output.mappings[0].reason == "cancelled"


@pytest.mark.anyio
async def test_counterparty_section_stays_blank() -> None:
    text = "Stazione appaltante - codice fiscale: _____\nIl sottoscritto _____"

    output = await compile_document(text, text, PROFILE, body_format="text")

    assert output.compilation.body == (
        "Stazione appaltante - codice fiscale: _____\nIl sottoscritto Mario Rossi"
    )
    assert output.mappings[0].reason == "counterparty_section"


@pytest.mark.anyio
async def test_manual_overrides_win_over_resolution() -> None:
    text = "Il sottoscritto _____, C.F. _____"

    output = await compile_document(
        text, text, PROFILE, body_format="text", manual_overrides={16: "Anna Verdi", 28: None}
    )

    assert output.compilation.body == "Il sottoscritto Anna Verdi, C.F. _____"
    assert output.mappings[0].source == "manual_override"


@pytest.mark.anyio
async def test_strict_mode_raises_with_full_output() -> None:
    text = "Il sottoscritto _____"

    with pytest.raises(MissingRequiredFieldsError) as exc_info:
        await compile_document(
            text,
            text,
            PROFILE,
            required_field_keys=["partita_iva"],
            body_format="text",
            fail_on_validation_errors=True,
        )

    assert exc_info.value.missing_required == ["partita_iva"]
    assert exc_info.value.output is not None
    assert exc_info.value.output.compilation.compiled_count == 1


@pytest.mark.anyio
async def test_unknown_body_format_is_rejected_before_any_work() -> None:
    with pytest.raises(InputShapeError):
        await compile_document("____", "____", {}, body_format="pdf")  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_pipeline_logs_counts_without_profile_values(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.DEBUG, logger="docfill")
    text = "Il sottoscritto _____, C.F. _____"

    await compile_document(text, text, PROFILE, body_format="text")

    records = [record for record in caplog.records if record.name.startswith("docfill.")]
    events = [json.loads(record.message)["event"] for record in records]
    assert events == ["extract_done", "resolve_done", "recompile_done", "compile_done"]
    assert all("Mario Rossi" not in record.message for record in records)
    assert all("RSSMRA80A01H501U" not in record.message for record in records)
