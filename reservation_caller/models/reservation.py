"""Data models for reservation requests and the calls that negotiate them."""

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _normalize_time(value: str) -> str:
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        msg = f"time must be 24-hour HH:MM, got {value!r}"
        raise ValueError(msg)
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def utcnow() -> datetime:
    """Timezone-aware current time used for all record timestamps."""
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Lifecycle status of a reservation call."""

    INIT = "INIT"
    DIALING = "DIALING"
    CONNECTED = "CONNECTED"
    DISCOVERY = "DISCOVERY"
    NEGOTIATION = "NEGOTIATION"
    PROPOSED_OUTCOME = "PROPOSED_OUTCOME"
    WAITING_USER_APPROVAL = "WAITING_USER_APPROVAL"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    ENDED = "ENDED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {CallStatus.CONFIRMED, CallStatus.FAILED, CallStatus.ENDED}
)


class OutcomeStatus(str, Enum):
    """Kind of judgment attached to a call."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"
    VOICEMAIL = "voicemail"


class Speaker(str, Enum):
    """Who produced a transcript line."""

    ASSISTANT = "assistant"
    BUSINESS = "business"
    SYSTEM = "system"


class ReservationConstraints(BaseModel):
    """Optional constraints on what the caller will accept."""

    model_config = ConfigDict(frozen=True)

    time_flex_minutes: int | None = Field(
        None, ge=0, description="Allowed minutes between preferred and offered time"
    )
    outdoor_preferred: bool | None = Field(None, description="Prefer outdoor seating")
    dietary: list[str] = Field(default_factory=list, description="Dietary notes")
    accessibility: str | None = Field(None, description="Accessibility needs")
    max_wait_minutes: int | None = Field(None, ge=0, description="Longest wait")


class ReservationPolicy(BaseModel):
    """What the assistant may agree to without asking.

    Only ``allow_auto_confirm`` changes behaviour (for proposed outcomes).
    Deposit and cancellation terms always go to a human, and so do
    unclear answers once clarification runs out; the other two flags are
    stored with the request for callers and are not consulted.
    """

    model_config = ConfigDict(frozen=True)

    allow_auto_confirm: bool = Field(False, description="Confirm without a human")
    allow_deposit: bool = Field(
        False, description="Caller's deposit preference, stored only"
    )
    require_human_on_ambiguity: bool = Field(
        True, description="Caller's ambiguity preference, stored only"
    )


class ReservationRequest(BaseModel):
    """Intent for one booking attempt."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(default="", description="Caller-supplied id (optional)")
    business_name: str = Field(..., min_length=1, description="Business to call")
    business_phone: str = Field(..., min_length=1, description="Number to dial")
    date: str = Field(..., min_length=1, description="Reservation date")
    time_preferred: str = Field(..., description="Preferred time, 24-hour HH:MM")
    party_size: int = Field(..., gt=0, description="Number of people")
    name_for_booking: str = Field(..., min_length=1, description="Name to book under")
    constraints: ReservationConstraints = Field(default_factory=ReservationConstraints)
    policy: ReservationPolicy = Field(default_factory=ReservationPolicy)

    @field_validator("time_preferred")
    @classmethod
    def _check_time(cls, value: str) -> str:
        return _normalize_time(value)

    def flex_minutes(self, default: int = 30) -> int:
        """Flexibility window, falling back to ``default`` when unset."""
        if self.constraints.time_flex_minutes is None:
            return default
        return self.constraints.time_flex_minutes


class ReservationPatch(BaseModel):
    """Partial correction supplied by a human before a recall."""

    model_config = ConfigDict(frozen=True)

    date: str | None = Field(None, min_length=1, description="New date")
    time_preferred: str | None = Field(None, description="New preferred time")
    party_size: int | None = Field(None, gt=0, description="New party size")

    @field_validator("time_preferred")
    @classmethod
    def _check_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _normalize_time(value)

    def is_empty(self) -> bool:
        return not self.fields()

    def fields(self) -> dict:
        """Only the fields that were actually supplied."""
        return self.model_dump(exclude_none=True)


class ConfirmedDetails(BaseModel):
    """Booking details attached to a confirmed or pending outcome."""

    date: str
    time: str
    party_size: int
    name: str
    notes: str | None = None


class CallOutcome(BaseModel):
    """The call's terminal-or-pending judgment."""

    status: OutcomeStatus = Field(..., description="Outcome kind")
    needs_user_approval: bool = Field(False, description="Waiting on a human")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Heuristic score")
    reason: str | None = Field(None, description="Why this outcome was reached")
    confirmed_details: ConfirmedDetails | None = Field(
        None, description="Booking details when applicable"
    )


class TranscriptEntry(BaseModel):
    """One line of the call transcript."""

    at: datetime = Field(default_factory=utcnow)
    speaker: Speaker
    text: str


class CallRecord(BaseModel):
    """Aggregate tracking one reservation attempt end-to-end."""

    id: str = Field(description="Unique call identifier")
    reservation: ReservationRequest
    status: CallStatus = Field(default=CallStatus.INIT)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    outcome: CallOutcome | None = None
    external_call_sid: str | None = Field(None, description="Twilio call SID")

    def count_speaker(self, speaker: Speaker) -> int:
        return sum(1 for entry in self.transcript if entry.speaker == speaker)

    def details(self, time: str | None = None, notes: str | None = None) -> ConfirmedDetails:
        """Booking details built from the current reservation."""
        return ConfirmedDetails(
            date=self.reservation.date,
            time=time or self.reservation.time_preferred,
            party_size=self.reservation.party_size,
            name=self.reservation.name_for_booking,
            notes=notes,
        )
