"""Data models for interpreting a business's reply."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Availability(str, Enum):
    """Three-valued availability signal."""

    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


class Disposition(str, Enum):
    """The decision engine's verdict."""

    CONFIRM = "confirm"
    REJECT = "reject"
    CLARIFY = "clarify"
    NEEDS_APPROVAL = "needs_approval"


class HumanDecision(str, Enum):
    """A human's answer to an approval prompt."""

    APPROVE = "approve"
    REVISE = "revise"
    CANCEL = "cancel"


class ParsedBusinessReply(BaseModel):
    """Signals extracted from one block of transcribed speech."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(..., description="Transcribed text, stripped")
    availability: Availability = Field(Availability.UNKNOWN)
    offered_times: tuple[str, ...] = Field(
        default=(), description="HH:MM mentions in order; the first is the offer"
    )
    has_deposit: bool = False
    has_cancellation_policy: bool = False
    needs_callback: bool = False
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def has_risk(self) -> bool:
        return self.has_deposit or self.has_cancellation_policy

    @property
    def first_offer(self) -> str | None:
        return self.offered_times[0] if self.offered_times else None


class NegotiationDecision(BaseModel):
    """What to do next with a call, given the business's reply."""

    model_config = ConfigDict(frozen=True)

    disposition: Disposition
    reason: str
    proposed_time: str | None = None
    notes: str | None = None
