"""Pull corrected reservation fields out of a human's chat message."""

import re

from pydantic import ValidationError

from reservation_caller.models import ReservationPatch

DATE_REGEX = re.compile(r"\b(20\d{2}-\d{2}-\d{2})\b")
TIME_REGEX = re.compile(r"\b([01]?\d|2[0-3])[:h]([0-5]\d)\b")
PARTY_REGEXES = (
    # "for 20:00" is a time, not a party of 20
    re.compile(r"\b(?:party|for|size)\s*(?:of\s*)?(\d{1,2})(?![\d:h])", re.IGNORECASE),
    re.compile(r"\b(\d{1,2})\s*(?:people|persons|guests)\b", re.IGNORECASE),
)


def parse_revision_text(text: str) -> ReservationPatch:
    """Parse text such as ``"2026-02-22 20:00 for 2"``.

    Fields that cannot be found are left unset, so the result may be empty.
    """
    fields: dict = {}

    date = DATE_REGEX.search(text)
    if date:
        fields["date"] = date.group(1)

    time = TIME_REGEX.search(text)
    if time:
        fields["time_preferred"] = f"{int(time.group(1)):02d}:{time.group(2)}"

    for pattern in PARTY_REGEXES:
        party = pattern.search(text)
        if party and int(party.group(1)) > 0:
            fields["party_size"] = int(party.group(1))
            break

    try:
        return ReservationPatch(**fields)
    except ValidationError:
        return ReservationPatch()
