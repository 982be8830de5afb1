"""Data models for detected blank markers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

SectionKind = Literal["own", "counterparty"]


class PatternType(str, Enum):
    """Closed set of blank-marker shapes recognised by the extractor."""

    ELLIPSIS_BRACKETS = "ellipsis_brackets"
    EMPTY_BRACKETS = "empty_brackets"
    BRACKETED_KEYWORD = "bracketed_keyword"
    DOUBLE_BRACE = "double_brace"
    ANGLE_BRACKET = "angle_bracket"
    UNDERSCORE_RUN = "underscore_run"
    DOT_RUN = "dot_run"
    DASH_RUN = "dash_run"


TOKEN_PATTERN_TYPES = frozenset(
    {
        PatternType.BRACKETED_KEYWORD,
        PatternType.DOUBLE_BRACE,
        PatternType.ANGLE_BRACKET,
    }
)


@dataclass(frozen=True)
class Pattern:
    """A single blank marker found in the original document text.

    ``index`` is the offset of the first marker character in the source text.
    It is assigned once at extraction time and identifies the pattern through
    every later stage.
    """

    index: int
    pattern_type: PatternType
    raw_text: str
    label: str = ""
    context_before: str = ""
    context_after: str = ""
    section: SectionKind | None = None

    @property
    def end(self) -> int:
        return self.index + len(self.raw_text)

    def display_name(self) -> str:
        """Label when known, otherwise a short preview of the marker itself."""

        if self.label:
            return self.label
        return self.raw_text[:20]
