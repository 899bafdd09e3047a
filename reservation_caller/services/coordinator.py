"""Applies dispositions and human decisions to call records.

The coordinator is the only writer of outcomes. Each entry point reads the
record, sets the outcome, moves the status through :class:`CallLifecycle` and
publishes notifications. Notifications are fire-and-forget and never undo a
transition. Callers must serialise entry points per call id.
"""

import json
import logging
from typing import NamedTuple

from reservation_caller.errors import (
    CallNotFoundError,
    MalformedInputError,
    TransportFailureError,
)
from reservation_caller.models import (
    CallOutcome,
    CallRecord,
    CallStatus,
    Disposition,
    HumanDecision,
    NegotiationDecision,
    OutcomeStatus,
    ReservationPatch,
    ReservationRequest,
    Speaker,
)
from reservation_caller.negotiation import (
    build_assistant_intro,
    decide_from_reply,
    needs_human_confirmation,
    parse_business_reply,
)
from reservation_caller.services.call_store import CallStore
from reservation_caller.services.lifecycle import CallLifecycle
from reservation_caller.services.notifier import (
    ApprovalPrompt,
    LifecycleEvent,
    NotificationBus,
)
from reservation_caller.services.twilio_service import TwilioService

logger = logging.getLogger(__name__)

NO_SPEECH_CONFIDENCE = 0.4
APPROVED_CONFIDENCE = 0.95
CANCELLED_CONFIDENCE = 1.0
TRANSPORT_CONFIDENCE = 1.0
VOICEMAIL_CONFIDENCE = 0.9
PROPOSED_CONFIDENCE = 0.78

ESCALATION_REASON = "Ambiguous after multiple clarification attempts"
ESCALATION_PROMPT_NOTES = "Ambiguous response after multiple attempts"


class ReplyResult(NamedTuple):
    """What happened to a call after one block of business speech."""

    decision: NegotiationDecision | None
    status: CallStatus
    escalated: bool = False
    ignored: bool = False


class DialResult(NamedTuple):
    """Result of asking the transport to place a call."""

    call: CallRecord
    simulated: bool
    call_sid: str | None


class CallCoordinator:
    """Drives call records from transport events, replies and human decisions."""

    def __init__(
        self,
        store: CallStore,
        notifier: NotificationBus,
        twilio: TwilioService | None = None,
        lifecycle: CallLifecycle | None = None,
        default_flex_minutes: int = 30,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.twilio = twilio
        self.lifecycle = lifecycle or CallLifecycle(store)
        self.default_flex_minutes = default_flex_minutes

    def _require(self, call_id: str) -> CallRecord:
        record = self.store.get(call_id)
        if record is None:
            raise CallNotFoundError(call_id)
        return record

    def _note(self, call_id: str, text: str) -> None:
        self.store.append_transcript(call_id, Speaker.SYSTEM, text)

    def _emit(self, event: str, payload: dict) -> None:
        self.notifier.publish(LifecycleEvent(event=event, payload=payload))

    def _prompt_approval(self, record: CallRecord, time: str, notes: str | None) -> None:
        self.notifier.publish(
            ApprovalPrompt(
                call_id=record.id,
                business_name=record.reservation.business_name,
                date=record.reservation.date,
                time=time,
                party_size=record.reservation.party_size,
                notes=notes,
            )
        )

    def _fail(self, call_id: str, reason: str, confidence: float) -> None:
        self.store.set_outcome(
            call_id,
            CallOutcome(
                status=OutcomeStatus.FAILED,
                needs_user_approval=False,
                confidence=confidence,
                reason=reason,
            ),
        )
        self.lifecycle.transition(call_id, CallStatus.FAILED, reason)

    # Outbound calls

    def start_call(self, reservation: ReservationRequest) -> DialResult:
        """Create a call record and dial the business.

        Raises:
            DuplicateCallError: If the request id is already in use
            TransportFailureError: If Twilio refused the call (record is FAILED)
        """
        record = self.store.create(reservation)
        self.lifecycle.transition(record.id, CallStatus.DIALING, "outbound call requested")
        self.store.append_transcript(
            record.id, Speaker.ASSISTANT, build_assistant_intro(record.reservation)
        )
        return self._dial(record, "call")

    def _dial(self, record: CallRecord, label: str) -> DialResult:
        if self.twilio is None or not self.twilio.is_configured():
            sid = f"SIM-{record.id[:8]}"
            self.store.attach_call_sid(record.id, sid)
            self._note(record.id, f"Simulated {label} placed: {sid}")
            logger.info(f"Twilio not configured - simulated {label} for {record.id}")
            return DialResult(call=record, simulated=True, call_sid=sid)

        try:
            sid = self.twilio.initiate_call(record.reservation.business_phone, record.id)
        except Exception as e:
            reason = f"Twilio {label} error: {e}"
            self._fail(record.id, reason, TRANSPORT_CONFIDENCE)
            raise TransportFailureError(f"Failed to create {label}") from e

        self.store.attach_call_sid(record.id, sid)
        self._note(record.id, f"Twilio {label} created: {sid}")
        return DialResult(call=record, simulated=False, call_sid=sid)

    # Transport events

    def begin_discovery(self, call_id: str) -> CallRecord:
        """The business picked up and our script is about to play."""
        record = self._require(call_id)
        if self.lifecycle.accepts_transport_events(record):
            self.lifecycle.transition(call_id, CallStatus.DISCOVERY, "call answered")
        return record

    def apply_transport_event(
        self, call_id: str, event: str, answered_by: str | None = None
    ) -> CallRecord:
        """Apply a Twilio status callback.

        Events for calls that are finished or waiting on a human are recorded
        in the transcript but do not change status.
        """
        record = self._require(call_id)
        note = f"Twilio status: {event}"

        if not self.lifecycle.accepts_transport_events(record):
            self._note(call_id, f"{note} (ignored, call is {record.status.value})")
            return record

        if answered_by and answered_by.lower().startswith("machine"):
            self.store.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.VOICEMAIL,
                    needs_user_approval=False,
                    confidence=VOICEMAIL_CONFIDENCE,
                    reason=f"Answered by {answered_by}",
                ),
            )
            self.lifecycle.transition(call_id, CallStatus.ENDED, "voicemail")
            return record

        status = self.lifecycle.status_for_transport_event(event)
        if status is None:
            logger.warning(f"Unknown Twilio status {event!r} for call {call_id}")
            self._note(call_id, note)
            return record

        if status is CallStatus.FAILED:
            self._fail(call_id, f"Call {event}", TRANSPORT_CONFIDENCE)
            self._emit(
                "call_failed",
                {
                    "call_id": call_id,
                    "business_name": record.reservation.business_name,
                    "reason": f"Call {event}",
                },
            )
        elif not self.lifecycle.advances(record, status):
            self._note(call_id, note)
        else:
            self.lifecycle.transition(call_id, status, note)
        return record

    # Business replies

    def apply_reply(self, call_id: str, speech: str) -> ReplyResult:
        """Interpret one block of business speech and move the call on.

        Args:
            call_id: Call identifier
            speech: Transcribed speech, possibly empty

        Returns:
            ReplyResult with the decision (None when nothing was heard or the
            call had already finished, in which case ``ignored`` is set)

        Raises:
            CallNotFoundError: If the call is unknown
        """
        record = self._require(call_id)
        speech = (speech or "").strip()
        self.store.append_transcript(
            call_id, Speaker.BUSINESS, speech or "(no speech captured)"
        )

        if record.status.is_terminal:
            self._note(call_id, f"Reply ignored, call is {record.status.value}")
            return ReplyResult(decision=None, status=record.status, ignored=True)

        if not speech:
            self._fail(call_id, "No speech captured", NO_SPEECH_CONFIDENCE)
            return ReplyResult(decision=None, status=record.status)

        parsed = parse_business_reply(speech)
        decision = decide_from_reply(parsed, record.reservation, self.default_flex_minutes)
        logger.info(
            f"Call {call_id} reply -> {decision.disposition.value}: {decision.reason}"
        )
        reservation = record.reservation

        if decision.disposition is Disposition.REJECT:
            self._fail(call_id, decision.reason, parsed.confidence)
            self._emit(
                "call_failed",
                {
                    "call_id": call_id,
                    "business_name": reservation.business_name,
                    "reason": decision.reason,
                },
            )
            return ReplyResult(decision=decision, status=record.status)

        if decision.disposition is Disposition.CONFIRM:
            details = record.details(time=decision.proposed_time, notes=decision.notes)
            self.store.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.CONFIRMED,
                    needs_user_approval=False,
                    confidence=parsed.confidence,
                    reason=decision.reason,
                    confirmed_details=details,
                ),
            )
            self.lifecycle.transition(call_id, CallStatus.CONFIRMED, decision.reason)
            self._emit(
                "call_confirmed",
                {
                    "call_id": call_id,
                    "business_name": reservation.business_name,
                    "confirmed": details.model_dump(),
                },
            )
            return ReplyResult(decision=decision, status=record.status)

        if decision.disposition is Disposition.NEEDS_APPROVAL:
            time = decision.proposed_time or reservation.time_preferred
            self._await_approval(
                record,
                reason=decision.reason,
                confidence=parsed.confidence,
                time=time,
                outcome_notes=decision.notes,
                prompt_notes=decision.notes,
            )
            return ReplyResult(decision=decision, status=record.status)

        # clarify
        next_status = self.lifecycle.status_for_disposition(record, decision.disposition)
        if next_status is CallStatus.WAITING_USER_APPROVAL:
            self._await_approval(
                record,
                reason=ESCALATION_REASON,
                confidence=parsed.confidence,
                time=reservation.time_preferred,
                outcome_notes=speech,
                prompt_notes=ESCALATION_PROMPT_NOTES,
            )
            return ReplyResult(decision=decision, status=record.status, escalated=True)

        self.lifecycle.transition(call_id, CallStatus.NEGOTIATION, decision.reason)
        return ReplyResult(decision=decision, status=record.status)

    def _await_approval(
        self,
        record: CallRecord,
        reason: str,
        confidence: float,
        time: str,
        outcome_notes: str | None,
        prompt_notes: str | None,
    ) -> None:
        self.store.set_outcome(
            record.id,
            CallOutcome(
                status=OutcomeStatus.PENDING,
                needs_user_approval=True,
                confidence=confidence,
                reason=reason,
                confirmed_details=record.details(time=time, notes=outcome_notes),
            ),
        )
        self.lifecycle.transition(record.id, CallStatus.WAITING_USER_APPROVAL, reason)
        reservation = record.reservation
        self._emit(
            "approval_required",
            {
                "call_id": record.id,
                "business_name": reservation.business_name,
                "phone": reservation.business_phone,
                "date": reservation.date,
                "time": time,
                "party_size": reservation.party_size,
                "notes": prompt_notes,
            },
        )
        self._prompt_approval(record, time, prompt_notes)

    # Human decisions

    def apply_decision(
        self, call_id: str, decision: HumanDecision | str, notes: str | None = None
    ) -> CallRecord:
        """Apply a human's approve / revise / cancel.

        ``revise`` only records the request and reopens negotiation; the
        corrected fields arrive later through :meth:`apply_recall`.

        Raises:
            MalformedInputError: If ``decision`` is not a known decision
            CallNotFoundError: If the call is unknown
            InvalidTransitionError: If the call has already finished
        """
        try:
            decision = HumanDecision(decision)
        except ValueError as e:
            raise MalformedInputError(f"Invalid decision: {decision!r}") from e

        record = self._require(call_id)
        target = self.lifecycle.check_human_decision(record, decision)
        reservation = record.reservation

        if decision is HumanDecision.APPROVE:
            details = record.details(notes=notes)
            self.store.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.CONFIRMED,
                    needs_user_approval=False,
                    confidence=APPROVED_CONFIDENCE,
                    reason="Approved by user",
                    confirmed_details=details,
                ),
            )
            self.lifecycle.transition(call_id, target, "approved by user")
            self._emit(
                "call_confirmed",
                {
                    "call_id": call_id,
                    "business_name": reservation.business_name,
                    "confirmed": details.model_dump(),
                },
            )
        elif decision is HumanDecision.CANCEL:
            self.store.set_outcome(
                call_id,
                CallOutcome(
                    status=OutcomeStatus.FAILED,
                    needs_user_approval=False,
                    confidence=CANCELLED_CONFIDENCE,
                    reason="Cancelled by user",
                ),
            )
            self.lifecycle.transition(call_id, target, "cancelled by user")
            self._emit(
                "call_cancelled",
                {"call_id": call_id, "business_name": reservation.business_name},
            )
        else:
            self.lifecycle.transition(call_id, target, "revision requested")
            self._note(call_id, f"User revision requested: {notes or '(no notes)'}")

        return record

    def apply_recall(
        self, call_id: str, patch: ReservationPatch, notes: str | None = None
    ) -> DialResult:
        """Merge a correction into the reservation and dial again.

        Any call may be recalled, including finished ones; the recall is a
        new attempt, so the previous attempt's outcome is cleared.

        Raises:
            MalformedInputError: If the patch carries no fields
            CallNotFoundError: If the call is unknown
            TransportFailureError: If Twilio refused the call (record is FAILED)
        """
        if patch.is_empty():
            raise MalformedInputError(
                "Recall needs at least one of date, time_preferred, party_size"
            )
        record = self._require(call_id)

        updates = patch.fields()
        self.store.update_reservation(call_id, patch)
        self._note(
            call_id,
            f"Recall requested with updates: {json.dumps({**updates, 'notes': notes})}",
        )
        self.store.set_outcome(call_id, None)
        self.lifecycle.transition(call_id, CallStatus.DIALING, "recall")
        return self._dial(record, "recall")

    # Manual outcome proposals

    def propose_outcome(self, call_id: str, note: str) -> CallRecord:
        """Record an outcome proposed from a free-text note.

        The outcome waits for a human when the note mentions risky terms and
        the reservation policy does not allow auto-confirmation.
        """
        record = self._require(call_id)
        require_approval = needs_human_confirmation(
            note, record.reservation.policy.allow_auto_confirm
        )
        self.store.set_outcome(
            call_id,
            CallOutcome(
                status=OutcomeStatus.PENDING,
                needs_user_approval=require_approval,
                confidence=PROPOSED_CONFIDENCE,
                reason=note,
                confirmed_details=record.details(notes=note),
            ),
        )
        target = (
            CallStatus.WAITING_USER_APPROVAL
            if require_approval
            else CallStatus.PROPOSED_OUTCOME
        )
        self.lifecycle.transition(call_id, target, "outcome proposed")
        return record
