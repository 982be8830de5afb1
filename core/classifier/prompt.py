"""Classification request models and prompt rendering."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from core.mapping.profile import PLACEHOLDER_VALUES, available_profile_entries
from core.patterns.models import Pattern

SYSTEM_PROMPT = (
    "You fill Italian administrative and legal forms. For every blank marker you "
    "receive, decide which profile field it asks for and whether it must be filled. "
    "Answer with a JSON array only."
)

_INSTRUCTIONS = """\
For EACH item (one answer per item, same order):
1. Read the text before and after the blank.
2. Identify the profile field it refers to.
3. Blanks that belong to the counter-party (e.g. "Stazione Appaltante",
   "Amministrazione aggiudicatrice") must NOT be filled: compile=false, value="".
4. Blanks of the declaring party ("Operatore Economico", "Il sottoscritto") are
   filled with the EXACT profile value. Never invent values.
5. If no profile value fits: compile=false, value="".

Respond with a JSON array of exactly {count} objects:
[{{"pattern_index": 0, "field_identified": "codice_fiscale", "compile": true,
   "value": "RSSMRA80A01H501U", "confidence": 0.95}}]
pattern_index is the item index (0-{last}). confidence is between 0 and 1.
No markdown, no extra text."""


class BatchItem(BaseModel):
    """One marker as sent to the classifier."""

    model_config = ConfigDict(extra="forbid")

    index: int
    offset: int
    type: str
    label: str
    context_before: str
    context_after: str


class ClassificationRequest(BaseModel):
    """Payload for one classifier batch call."""

    model_config = ConfigDict(extra="forbid")

    batch_items: list[BatchItem] = Field(default_factory=list)
    available_profile_entries: dict[str, str] = Field(default_factory=dict)

    def render_user_prompt(self) -> str:
        items_json = json.dumps(
            [item.model_dump() for item in self.batch_items], ensure_ascii=False, indent=1
        )
        profile_lines = "\n".join(
            f"{key}: {value}" for key, value in sorted(self.available_profile_entries.items())
        )
        count = len(self.batch_items)
        return (
            f"PROFILE DATA:\n{profile_lines or '(empty)'}\n\n"
            f"BLANKS ({count}):\n{items_json}\n\n"
            f"{_INSTRUCTIONS.format(count=count, last=max(count - 1, 0))}"
        )

    def to_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.render_user_prompt()},
        ]


def build_request(
    patterns: Sequence[Pattern],
    profile: Mapping[str, object],
    *,
    context_chars: int = 100,
    placeholders: Iterable[str] = PLACEHOLDER_VALUES,
) -> ClassificationRequest:
    """Build a request for one batch, trimming contexts near the marker."""

    items = [
        BatchItem(
            index=position,
            offset=pattern.index,
            type=pattern.pattern_type.value,
            label=pattern.label,
            context_before=_tail(pattern.context_before, context_chars),
            context_after=pattern.context_after[:context_chars],
        )
        for position, pattern in enumerate(patterns)
    ]
    return ClassificationRequest(
        batch_items=items,
        available_profile_entries=available_profile_entries(profile, placeholders),
    )


def _tail(text: str, size: int) -> str:
    if size <= 0:
        return ""
    return text[-size:]
