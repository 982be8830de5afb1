from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from core.mapping.models import FieldMapping
from core.patterns.extractor import extract_patterns
from core.patterns.models import Pattern, PatternType
from core.render.recompiler import escape_markup, recompile
from core.utils.errors import InputShapeError


def _fill(pattern: Pattern, value: str) -> FieldMapping:
    return FieldMapping(
        pattern_index=pattern.index,
        field_key="campo",
        value=value,
        should_compile=True,
        confidence=0.9,
        source="deterministic",
    )


def _skip(pattern: Pattern, *, needs_review: bool = False) -> FieldMapping:
    if needs_review:
        return FieldMapping.review_required(pattern, reason="parse_error")
    return FieldMapping.skipped(pattern, source="deterministic", confidence=0.9)


def test_reverse_order_substitution_keeps_earlier_markers_valid() -> None:
    text = "AAA____BBB____CCC"
    first, second = extract_patterns(text)

    result = recompile(
        text, [first, second], [_fill(first, "X"), _fill(second, "YY")], body_format="text"
    )

    assert result.body == "AAAXBBBYYCCC"
    assert result.compiled_count == 2
    assert [entry.status for entry in result.entries] == ["replaced", "replaced"]


def test_duplicate_markers_are_not_cross_assigned_when_one_is_skipped() -> None:
    text = "uno _____ due _____ tre _____"
    patterns = extract_patterns(text)
    mappings = [_fill(patterns[0], "A"), _skip(patterns[1]), _fill(patterns[2], "C")]

    result = recompile(text, patterns, mappings, body_format="text")

    assert result.body == "uno A due _____ tre C"
    assert (result.compiled_count, result.skipped_count, result.not_found_count) == (2, 1, 0)


def test_short_marker_never_matches_inside_longer_run() -> None:
    pattern = Pattern(index=0, pattern_type=PatternType.UNDERSCORE_RUN, raw_text="___")
    body = "firma ________ e data ___"

    result = recompile(body, [pattern], [_fill(pattern, "OK")], body_format="text")

    assert result.body == "firma ________ e data OK"


def test_markup_values_are_escaped_and_round_trip() -> None:
    text = "Ragione sociale: _____"
    (pattern,) = extract_patterns(text)
    body = "<doc><p><t>Ragione sociale: _____</t></p></doc>"
    value = 'Rossi & Figli <S.r.l.> "Il Ponte" d\'Italia'

    result = recompile(body, [pattern], [_fill(pattern, value)])

    assert ET.fromstring(result.body).find("p/t").text == f"Ragione sociale: {value}"
    assert "&amp;" in result.body


def test_markup_search_finds_escaped_angle_bracket_markers() -> None:
    text = "Nome: <NOME> fine"
    (pattern,) = extract_patterns(text)
    body = "<doc><t>Nome: &lt;NOME&gt; fine</t></doc>"

    result = recompile(body, [pattern], [_fill(pattern, "Mario")])

    assert result.body == "<doc><t>Nome: Mario fine</t></doc>"


def test_fragmented_marker_is_counted_not_found() -> None:
    text = "Nome: _____"
    (pattern,) = extract_patterns(text)
    body = "<t>Nome: ___</t><t>__</t>"

    result = recompile(body, [pattern], [_fill(pattern, "Mario")])

    assert result.body == body
    assert result.not_found_count == 1
    assert result.entries[0].status == "not_found"


def test_run_nested_inside_bracketed_marker_is_not_its_occurrence() -> None:
    text = "Ente [.....] data ....."
    bracketed, dots = extract_patterns(text)
    assert (bracketed.raw_text, dots.raw_text) == ("[.....]", ".....")

    result = recompile(
        text,
        [bracketed, dots],
        [_fill(bracketed, "ENTE"), _fill(dots, "DATA")],
        body_format="text",
    )

    assert result.body == "Ente ENTE data DATA"
    assert (result.compiled_count, result.not_found_count) == (2, 0)


def test_fragmented_duplicate_leaves_the_whole_group_untouched() -> None:
    text = "A: _____\nB: _____"
    first, second = extract_patterns(text)
    body = "<p><t>A: ___</t><t>__</t></p><p><t>B: _____</t></p>"

    result = recompile(body, [first, second], [_fill(first, "XA"), _fill(second, "YB")])

    assert result.body == body
    assert "XA" not in result.body
    assert result.not_found_count == 2
    assert [entry.reason for entry in result.entries] == [
        "marker_count_mismatch",
        "marker_count_mismatch",
    ]


def test_extra_occurrence_in_body_is_not_guessed() -> None:
    text = "Nome: _____"
    (pattern,) = extract_patterns(text)
    body = "Nome: _____ (vedi _____)"

    result = recompile(body, [pattern], [_fill(pattern, "Mario")], body_format="text")

    assert result.body == body
    assert result.entries[0].status == "not_found"


def test_text_bodies_are_inserted_verbatim() -> None:
    (pattern,) = extract_patterns("Nome: _____")

    result = recompile("Nome: _____", [pattern], [_fill(pattern, "A & <B>")], body_format="text")

    assert result.body == "Nome: A & <B>"


def test_summary_line_counts_review_mappings() -> None:
    text = "a ____ b ____ c ____"
    patterns = extract_patterns(text)
    mappings = [
        _fill(patterns[0], "1"),
        _skip(patterns[1], needs_review=True),
        _skip(patterns[2]),
    ]

    result = recompile(text, patterns, mappings, body_format="text")

    assert result.summary_line() == "compiled 1 of 3 fields; 1 need manual review"


def test_escape_markup_covers_all_reserved_characters() -> None:
    assert escape_markup("<a href=\"x\">'&'</a>") == (
        "&lt;a href=&quot;x&quot;&gt;&apos;&amp;&apos;&lt;/a&gt;"
    )


def test_input_shape_errors_fail_fast() -> None:
    first, second = extract_patterns("____ e ____")
    unknown = Pattern(index=99, pattern_type=PatternType.UNDERSCORE_RUN, raw_text="____")

    with pytest.raises(InputShapeError):
        recompile("", [first, second], [_fill(first, "x")])
    with pytest.raises(InputShapeError):
        recompile("", [first, second], [_fill(first, "x"), _fill(first, "y")])
    with pytest.raises(InputShapeError):
        recompile("", [first], [_fill(unknown, "x")])
    with pytest.raises(InputShapeError):
        recompile("", [first], [_fill(first, "x")], body_format="html")  # type: ignore[arg-type]
