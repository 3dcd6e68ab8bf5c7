"""Candidate name and GATT UUID matching."""

from __future__ import annotations

import re

from curtaincall.core.model import Candidate, MatchRules

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
_SHORT_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$")


def name_matches(name: str | None, rules: MatchRules) -> bool:
    if not name:
        return False
    lower_name = name.lower()
    return any(token.lower() in lower_name for token in rules.name_contains)


def is_target(candidate: Candidate, rules: MatchRules) -> bool:
    return name_matches(candidate.name, rules)


def expand_uuid(value: str) -> str:
    """Return the 128-bit form of a 16-bit, 32-bit, or 128-bit UUID string."""
    normalized = value.strip().lower()
    if _SHORT_UUID_RE.match(normalized):
        return normalized.rjust(8, "0") + _BASE_UUID_SUFFIX
    return normalized


def uuid_matches(candidate_uuid: str, wanted: str) -> bool:
    return expand_uuid(candidate_uuid) == expand_uuid(wanted)
