"""Scripted phrasing and the risk check for proposed outcomes."""

from reservation_caller.models import CallStatus, ReservationRequest

RISKY_TERMS = ("deposit", "card", "fee", "cancellation", "prepay")

DISCOVERY_QUESTION = (
    "Could you confirm availability and any important conditions "
    "like deposit or cancellation policy?"
)
CLARIFY_QUESTION = (
    "Thanks. Could you repeat the available time and any reservation conditions?"
)
NO_SPEECH_GOODBYE = "I did not hear a response. I will follow up later. Thank you."
REJECT_GOODBYE = "Understood, thank you for checking. Have a great day."
APPROVAL_GOODBYE = (
    "Thank you. I need to confirm final details with {name} and will call back if needed."
)
ESCALATION_GOODBYE = (
    "Thank you. I will confirm details with {name} and follow up if needed."
)
CONFIRM_GOODBYE = "Perfect. Please confirm the reservation under {name}. Thank you."
CLOSED_GOODBYE = "Thank you for your time. Goodbye."


def build_assistant_intro(reservation: ReservationRequest) -> str:
    """Opening line spoken when the business picks up."""
    return (
        f"Hi, I'm an assistant calling on behalf of {reservation.name_for_booking}. "
        f"We'd like a reservation for {reservation.party_size} on {reservation.date} "
        f"around {reservation.time_preferred}."
    )


def needs_human_confirmation(note: str, allow_auto_confirm: bool = False) -> bool:
    """Whether a free-text note describes terms a human must sign off on."""
    if allow_auto_confirm:
        return False
    lower = note.lower()
    return any(term in lower for term in RISKY_TERMS)


def closing_line(
    status: CallStatus, name: str, heard: bool = True, escalated: bool = False
) -> str | None:
    """What to say before hanging up, or None when the conversation goes on."""
    if not heard:
        return NO_SPEECH_GOODBYE
    if status is CallStatus.FAILED:
        return REJECT_GOODBYE
    if status is CallStatus.CONFIRMED:
        return CONFIRM_GOODBYE.format(name=name)
    if status is CallStatus.ENDED:
        return CLOSED_GOODBYE
    if status is CallStatus.WAITING_USER_APPROVAL:
        template = ESCALATION_GOODBYE if escalated else APPROVAL_GOODBYE
        return template.format(name=name)
    return None
