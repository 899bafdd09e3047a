"""Call status transitions.

Dispositions from the decision engine, human decisions and Twilio status
callbacks all funnel through :class:`CallLifecycle`, which owns the mapping
onto :class:`CallStatus` and writes a system transcript line for every change.
"""

import logging

from reservation_caller.errors import CallNotFoundError, InvalidTransitionError
from reservation_caller.models import (
    CallRecord,
    CallStatus,
    Disposition,
    HumanDecision,
    Speaker,
)
from reservation_caller.services.call_store import CallStore

logger = logging.getLogger(__name__)

DISPOSITION_STATUS: dict[Disposition, CallStatus] = {
    Disposition.REJECT: CallStatus.FAILED,
    Disposition.CONFIRM: CallStatus.CONFIRMED,
    Disposition.NEEDS_APPROVAL: CallStatus.WAITING_USER_APPROVAL,
    Disposition.CLARIFY: CallStatus.NEGOTIATION,
}

HUMAN_DECISION_STATUS: dict[HumanDecision, CallStatus] = {
    HumanDecision.APPROVE: CallStatus.CONFIRMED,
    HumanDecision.CANCEL: CallStatus.FAILED,
    HumanDecision.REVISE: CallStatus.NEGOTIATION,
}

# Twilio CallStatus values
TRANSPORT_STATUS: dict[str, CallStatus] = {
    "queued": CallStatus.DIALING,
    "initiated": CallStatus.DIALING,
    "ringing": CallStatus.DIALING,
    "answered": CallStatus.CONNECTED,
    "in-progress": CallStatus.CONNECTED,
    "completed": CallStatus.ENDED,
    "busy": CallStatus.FAILED,
    "no-answer": CallStatus.FAILED,
    "failed": CallStatus.FAILED,
    "canceled": CallStatus.FAILED,
}

# In-call statuses in the order a call moves through them
PROGRESS_ORDER: tuple[CallStatus, ...] = (
    CallStatus.INIT,
    CallStatus.DIALING,
    CallStatus.CONNECTED,
    CallStatus.DISCOVERY,
    CallStatus.NEGOTIATION,
    CallStatus.PROPOSED_OUTCOME,
)


class CallLifecycle:
    """Applies status transitions to records held by a :class:`CallStore`."""

    def __init__(self, store: CallStore, max_clarification_attempts: int = 3) -> None:
        self.store = store
        self.max_clarification_attempts = max_clarification_attempts

    def _require(self, call_id: str) -> CallRecord:
        record = self.store.get(call_id)
        if record is None:
            raise CallNotFoundError(call_id)
        return record

    def transition(
        self, call_id: str, status: CallStatus, reason: str | None = None
    ) -> CallRecord:
        """Move a call to ``status`` and log it in the transcript.

        Re-entering the current status is not a transition and writes nothing.

        Raises:
            CallNotFoundError: If the call is unknown
        """
        record = self._require(call_id)
        previous = record.status
        if previous == status:
            return record

        self.store.update_status(call_id, status)
        text = f"Status {previous.value} -> {status.value}"
        if reason:
            text = f"{text} ({reason})"
        self.store.append_transcript(call_id, Speaker.SYSTEM, text)
        logger.info(f"Call {call_id}: {text}")
        return record

    def clarification_exhausted(self, record: CallRecord) -> bool:
        """Whether the business has already answered too many times to ask again."""
        return record.count_speaker(Speaker.BUSINESS) >= self.max_clarification_attempts

    def status_for_disposition(
        self, record: CallRecord, disposition: Disposition
    ) -> CallStatus:
        if disposition is Disposition.CLARIFY and self.clarification_exhausted(record):
            return CallStatus.WAITING_USER_APPROVAL
        return DISPOSITION_STATUS[disposition]

    @staticmethod
    def accepts_transport_events(record: CallRecord) -> bool:
        """Transport events only move calls that are still on the line.

        Terminal calls stay put, and so do calls waiting for a human: the
        business hanging up after we promised to follow up must not wipe the
        pending approval.
        """
        return not (
            record.status.is_terminal
            or record.status is CallStatus.WAITING_USER_APPROVAL
        )

    @staticmethod
    def status_for_transport_event(event: str) -> CallStatus | None:
        return TRANSPORT_STATUS.get(event.strip().lower())

    @staticmethod
    def advances(record: CallRecord, status: CallStatus) -> bool:
        """Whether a transport event's ``status`` moves the call forward.

        Late or out-of-order callbacks such as ``ringing`` after the business
        has already answered must not pull a call back. ``ENDED`` and
        ``FAILED`` always apply.
        """
        if status not in PROGRESS_ORDER:
            return True
        if record.status not in PROGRESS_ORDER:
            return False
        return PROGRESS_ORDER.index(status) > PROGRESS_ORDER.index(record.status)

    @staticmethod
    def check_human_decision(record: CallRecord, decision: HumanDecision) -> CallStatus:
        """Target status for a human decision.

        Raises:
            InvalidTransitionError: If the call has already finished
        """
        if record.status.is_terminal:
            msg = (
                f"Cannot {decision.value} call {record.id}: "
                f"it is already {record.status.value}"
            )
            raise InvalidTransitionError(msg)
        return HUMAN_DECISION_STATUS[decision]
