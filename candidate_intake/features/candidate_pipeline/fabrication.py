"""
Fabricated / placeholder candidate name screen.

Static blocklist plus a couple of patterns. Deterministic on purpose so every
rejection can be explained from the audit log.
"""

import re

KNOWN_FABRICATED_NAMES = frozenset(
    {
        "john smith",
        "jane doe",
        "john doe",
        "jane smith",
        "sarah johnson",
        "test candidate",
        "sample candidate",
        "example candidate",
        "test user",
        "sample user",
        "john test",
        "jane test",
        "candidate name",
        "full name",
        "your name",
        "first last",
        "firstname lastname",
    }
)

MIN_NAME_LENGTH = 3

_PLACEHOLDER_PREFIX = re.compile(r"^(test|sample|example|dummy|fake|placeholder)\b", re.IGNORECASE)
_GENERIC_LABEL = re.compile(r"^(candidate|applicant|person|user)\s*(name|[0-9])?$", re.IGNORECASE)


def is_fabricated_name(name: str | None) -> bool:
    """Return True when the name looks invented or is a template placeholder."""
    if not name:
        return True

    normalized = name.strip().lower()
    if normalized in KNOWN_FABRICATED_NAMES:
        return True
    if len(normalized) < MIN_NAME_LENGTH:
        return True
    if _PLACEHOLDER_PREFIX.search(normalized):
        return True
    if _GENERIC_LABEL.search(normalized):
        return True
    return False
