"""Party-section tagging for patterns.

Administrative forms often contain blanks reserved for the counter-party
(e.g. the contracting authority). Those must stay blank even when the
profile happens to hold a value for the same field.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Sequence
from dataclasses import dataclass

from core.patterns.models import Pattern, SectionKind

COUNTERPARTY_KEYWORDS: tuple[str, ...] = (
    "stazione appaltante",
    "amministrazione aggiudicatrice",
    "ente aggiudicatore",
)
OWN_PARTY_KEYWORDS: tuple[str, ...] = (
    "operatore economico",
    "il sottoscritto",
    "la sottoscritta",
    "concorrente",
    "partecipante",
)


@dataclass(frozen=True)
class SectionRules:
    counterparty_keywords: tuple[str, ...] = COUNTERPARTY_KEYWORDS
    own_party_keywords: tuple[str, ...] = OWN_PARTY_KEYWORDS


def assign_sections(
    patterns: Sequence[Pattern], text: str, rules: SectionRules | None = None
) -> list[Pattern]:
    """Tag each pattern with the party section of the nearest preceding keyword.

    ``patterns`` must be sorted by ``index``, as returned by the extractor.
    """

    active_rules = rules or SectionRules()
    boundaries = _section_boundaries(text, active_rules)

    tagged: list[Pattern] = []
    cursor = 0
    current: SectionKind | None = None
    for pattern in patterns:
        while cursor < len(boundaries) and boundaries[cursor][0] < pattern.index:
            current = boundaries[cursor][1]
            cursor += 1
        tagged.append(dataclasses.replace(pattern, section=current))
    return tagged


def _section_boundaries(text: str, rules: SectionRules) -> list[tuple[int, SectionKind]]:
    lowered = text.lower()
    boundaries: list[tuple[int, SectionKind]] = []
    for kind, keywords in (
        ("counterparty", rules.counterparty_keywords),
        ("own", rules.own_party_keywords),
    ):
        for keyword in keywords:
            if not keyword:
                continue
            for match in re.finditer(re.escape(keyword.lower()), lowered):
                boundaries.append((match.start(), kind))
    boundaries.sort(key=lambda item: item[0])
    return boundaries
