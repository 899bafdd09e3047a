"""Data models for the Reservation Caller system."""

from reservation_caller.models.negotiation import (
    Availability,
    Disposition,
    HumanDecision,
    NegotiationDecision,
    ParsedBusinessReply,
)
from reservation_caller.models.reservation import (
    TERMINAL_STATUSES,
    CallOutcome,
    CallRecord,
    CallStatus,
    ConfirmedDetails,
    OutcomeStatus,
    ReservationConstraints,
    ReservationPatch,
    ReservationPolicy,
    ReservationRequest,
    Speaker,
    TranscriptEntry,
)

__all__ = [
    "TERMINAL_STATUSES",
    "Availability",
    "CallOutcome",
    "CallRecord",
    "CallStatus",
    "ConfirmedDetails",
    "Disposition",
    "HumanDecision",
    "NegotiationDecision",
    "OutcomeStatus",
    "ParsedBusinessReply",
    "ReservationConstraints",
    "ReservationPatch",
    "ReservationPolicy",
    "ReservationRequest",
    "Speaker",
    "TranscriptEntry",
]
