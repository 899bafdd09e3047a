"""Turn transcribed speech from the business into structured signals.

The extraction is keyword based on purpose. Confidence is a coarse label
(0.55 when availability is unknown, 0.82 otherwise) and is only reported,
never used as a threshold.
"""

import re

from reservation_caller.models import Availability, ParsedBusinessReply

TIME_REGEX = re.compile(r"\b([01]?\d|2[0-3])[:h]([0-5]\d)\b")

NO_SIGNALS = (
    "not available",
    "fully booked",
    "sold out",
    "cannot",
    "can't",
    "no availability",
    "unavailable",
)
YES_SIGNALS = ("yes", "available", "we can", "sure", "ok", "okay", "works", "can do")

DEPOSIT_TERMS = ("deposit", "card hold", "prepay", "pre-pay", "credit card")
CANCELLATION_TERMS = ("cancellation", "cancel fee", "no-show", "penalty")
CALLBACK_TERMS = ("call back", "callback", "later")

UNKNOWN_CONFIDENCE = 0.55
KNOWN_CONFIDENCE = 0.82


def _alternation(terms: tuple[str, ...]) -> str:
    return "|".join(re.escape(term) for term in terms)


def _keyword_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(rf"\b(?:{_alternation(terms)})\b")


def _waiver_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    # explicit waivers only: "no deposit needed", "without a deposit", "deposit not required"
    alt = _alternation(terms)
    return re.compile(
        rf"\bno\s+(?:{alt})\s+(?:is\s+)?(?:needed|required|necessary)\b"
        rf"|\b(?:without|(?:don't|do not|won't|will not)\s+need)\s+(?:a\s+|any\s+)?(?:{alt})\b"
        rf"|\b(?:{alt})\s+(?:is\s+)?not\s+(?:needed|required|necessary)\b"
    )


_NO = _keyword_pattern(NO_SIGNALS)
_YES = _keyword_pattern(YES_SIGNALS)
_DEPOSIT = _keyword_pattern(DEPOSIT_TERMS)
_CANCELLATION = _keyword_pattern(CANCELLATION_TERMS)
_CALLBACK = _keyword_pattern(CALLBACK_TERMS)
_WAIVED_DEPOSIT = _waiver_pattern(DEPOSIT_TERMS)


def _mentions(text: str, pattern: re.Pattern[str], waived: re.Pattern[str]) -> bool:
    """True when ``pattern`` occurs outside an explicit waiver like "no deposit needed"."""
    return bool(pattern.search(waived.sub(" ", text)))


def extract_times(text: str) -> tuple[str, ...]:
    """All ``HH:MM`` mentions in left-to-right order, zero padded."""
    return tuple(
        f"{int(hour):02d}:{minute}" for hour, minute in TIME_REGEX.findall(text)
    )


def detect_availability(lower: str) -> Availability:
    """Negative signals win over positive ones."""
    if _NO.search(lower):
        return Availability.NO
    if _YES.search(lower):
        return Availability.YES
    return Availability.UNKNOWN


def parse_business_reply(text: str) -> ParsedBusinessReply:
    """Extract availability, offered times and risk flags from ``text``.

    Args:
        text: Transcribed speech, possibly empty

    Returns:
        ParsedBusinessReply for the text
    """
    raw = (text or "").strip()
    lower = raw.lower()

    availability = detect_availability(lower)

    return ParsedBusinessReply(
        raw=raw,
        availability=availability,
        offered_times=extract_times(lower),
        has_deposit=_mentions(lower, _DEPOSIT, _WAIVED_DEPOSIT),
        has_cancellation_policy=bool(_CANCELLATION.search(lower)),
        needs_callback=bool(_CALLBACK.search(lower)),
        confidence=(
            UNKNOWN_CONFIDENCE
            if availability is Availability.UNKNOWN
            else KNOWN_CONFIDENCE
        ),
    )
