from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Final

MAX_REPLY_CHARS: Final[int] = 500
UNKNOWN_LOCATION: Final[str] = "Unknown"


class UrgencyLevel(str, Enum):
    URGENT = "Urgent"
    NEEDED_TODAY = "Needed today"
    QUOTE = "Quote"
    GENERAL = "General"


# Checked in this order; the first rule that matches wins.
URGENCY_RULES: Final[tuple[tuple[re.Pattern[str], UrgencyLevel], ...]] = (
    (
        re.compile(
            r"\b(urgent|asap|emergency|danger|sparking|burning|smell of gas|fire|leak)\b"
        ),
        UrgencyLevel.URGENT,
    ),
    (
        re.compile(r"\b(today|now|tonight|immediately|straight away)\b"),
        UrgencyLevel.NEEDED_TODAY,
    ),
    (
        re.compile(r"\b(quote|estimate|price|cost|how much)\b"),
        UrgencyLevel.QUOTE,
    ),
)

# Replies to the "1 = urgent, 2 = today, 3 = quote" triage prompt.
TRIAGE_DIGIT_RE: Final[re.Pattern[str]] = re.compile(r"\b[123]\b")
TRIAGE_DIGITS: Final[dict[str, UrgencyLevel]] = {
    "1": UrgencyLevel.URGENT,
    "2": UrgencyLevel.NEEDED_TODAY,
    "3": UrgencyLevel.QUOTE,
}

# Works with: SW1A 1AA, SW1A1AA, M1 1AE, B33 8TH
POSTCODE_RE: Final[re.Pattern[str]] = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?)\s?(\d[A-Z]{2})\b")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Classification:
    urgency: UrgencyLevel
    location: str
    reply: str

    @property
    def has_location(self) -> bool:
        return self.location != UNKNOWN_LOCATION


def classify_urgency(text: str | None) -> UrgencyLevel:
    """
    Map a customer's message to an urgency label.

    Keyword groups are tried in priority order (emergency, immediacy, pricing),
    then a bare triage digit, regardless of where each appears in the text.
    """
    t = (text or "").lower()

    for pattern, level in URGENCY_RULES:
        if pattern.search(t):
            return level

    m = TRIAGE_DIGIT_RE.search(t)
    if m:
        return TRIAGE_DIGITS[m.group(0)]

    return UrgencyLevel.GENERAL


def extract_location(text: str | None) -> str:
    """Return the first UK postcode in the text as "OUTWARD INWARD", or "Unknown"."""
    t = WHITESPACE_RE.sub(" ", (text or "").upper()).strip()

    m = POSTCODE_RE.search(t)
    if not m:
        return UNKNOWN_LOCATION

    return f"{m.group(1)} {m.group(2)}"


def clean_reply(text: str | None) -> str:
    return (text or "").strip()[:MAX_REPLY_CHARS]


def classify_message(text: str | None) -> Classification:
    return Classification(
        urgency=classify_urgency(text),
        location=extract_location(text),
        reply=clean_reply(text),
    )
