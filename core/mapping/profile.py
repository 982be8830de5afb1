"""Helpers for caller-supplied profile data (opaque key -> value mapping)."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

PLACEHOLDER_VALUES: frozenset[str] = frozenset({"[da compilare]", "da compilare", "n/a", "-"})


def is_placeholder_value(value: object, placeholders: Iterable[str] = PLACEHOLDER_VALUES) -> bool:
    """Return True when ``value`` is missing, blank or a known placeholder."""

    if value is None:
        return True
    text = str(value).strip()
    if not text:
        return True
    return text.lower() in {item.lower() for item in placeholders}


def lookup_profile_value(
    profile: Mapping[str, object],
    field_key: str,
    placeholders: Iterable[str] = PLACEHOLDER_VALUES,
) -> str | None:
    """Return the usable profile value for ``field_key`` or None."""

    value = profile.get(field_key)
    if is_placeholder_value(value, placeholders):
        return None
    return str(value).strip()


def available_profile_entries(
    profile: Mapping[str, object],
    placeholders: Iterable[str] = PLACEHOLDER_VALUES,
) -> dict[str, str]:
    """Profile entries with empty and placeholder values removed."""

    placeholder_set = frozenset(placeholders)
    entries: dict[str, str] = {}
    for key, value in profile.items():
        if is_placeholder_value(value, placeholder_set):
            continue
        entries[str(key)] = str(value).strip()
    return entries
