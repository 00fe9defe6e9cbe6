from __future__ import annotations

import re
from datetime import UTC, datetime

_WORD_PATTERN = re.compile(r"\b\w{3,}\b")


def utc_now() -> datetime:
    return datetime.now(UTC)


def now_utc_iso() -> str:
    return utc_now().isoformat()


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def extract_words(text: str | None) -> set[str]:
    if not text:
        return set()
    return set(_WORD_PATTERN.findall(text.lower()))
