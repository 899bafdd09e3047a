"""Tests for call status transitions."""

import pytest

from reservation_caller.errors import CallNotFoundError, InvalidTransitionError
from reservation_caller.models import (
    CallStatus,
    Disposition,
    HumanDecision,
    Speaker,
)
from reservation_caller.services.lifecycle import CallLifecycle


@pytest.fixture
def lifecycle(store):
    return CallLifecycle(store)


@pytest.fixture
def record(store, reservation):
    return store.create(reservation)


class TestTransition:
    """Tests for CallLifecycle.transition."""

    def test_writes_system_note(self, lifecycle, record):
        lifecycle.transition(record.id, CallStatus.DIALING, "outbound call requested")

        assert record.status == CallStatus.DIALING
        last = record.transcript[-1]
        assert last.speaker == Speaker.SYSTEM
        assert last.text == "Status INIT -> DIALING (outbound call requested)"

    def test_without_reason(self, lifecycle, record):
        lifecycle.transition(record.id, CallStatus.DIALING)
        assert record.transcript[-1].text == "Status INIT -> DIALING"

    def test_same_status_is_noop(self, lifecycle, record):
        count = len(record.transcript)
        lifecycle.transition(record.id, CallStatus.INIT, "again")
        assert len(record.transcript) == count

    def test_unknown_call(self, lifecycle):
        with pytest.raises(CallNotFoundError):
            lifecycle.transition("missing", CallStatus.DIALING)


class TestDispositions:
    """Tests for disposition to status mapping."""

    @pytest.mark.parametrize(
        ("disposition", "status"),
        [
            (Disposition.REJECT, CallStatus.FAILED),
            (Disposition.CONFIRM, CallStatus.CONFIRMED),
            (Disposition.NEEDS_APPROVAL, CallStatus.WAITING_USER_APPROVAL),
            (Disposition.CLARIFY, CallStatus.NEGOTIATION),
        ],
    )
    def test_mapping(self, lifecycle, record, disposition, status):
        assert lifecycle.status_for_disposition(record, disposition) == status

    def test_clarify_escalates_after_attempts(self, store, lifecycle, record):
        for text in ("hmm", "uh", "well"):
            store.append_transcript(record.id, Speaker.BUSINESS, text)

        assert lifecycle.clarification_exhausted(record)
        assert (
            lifecycle.status_for_disposition(record, Disposition.CLARIFY)
            == CallStatus.WAITING_USER_APPROVAL
        )

    def test_attempts_configurable(self, store, record):
        lifecycle = CallLifecycle(store, max_clarification_attempts=1)
        store.append_transcript(record.id, Speaker.BUSINESS, "hmm")
        assert lifecycle.clarification_exhausted(record)


class TestTransportEvents:
    """Tests for Twilio status handling rules."""

    @pytest.mark.parametrize(
        ("event", "status"),
        [
            ("ringing", CallStatus.DIALING),
            ("in-progress", CallStatus.CONNECTED),
            ("Completed", CallStatus.ENDED),
            ("busy", CallStatus.FAILED),
            ("no-answer", CallStatus.FAILED),
            ("something-new", None),
        ],
    )
    def test_status_for_event(self, event, status):
        assert CallLifecycle.status_for_transport_event(event) == status

    def test_waiting_and_terminal_calls_ignore_events(self, lifecycle, record):
        assert lifecycle.accepts_transport_events(record)

        lifecycle.transition(record.id, CallStatus.WAITING_USER_APPROVAL)
        assert not lifecycle.accepts_transport_events(record)

        lifecycle.transition(record.id, CallStatus.CONFIRMED)
        assert not lifecycle.accepts_transport_events(record)

    @pytest.mark.parametrize(
        ("current", "status", "expected"),
        [
            (CallStatus.DIALING, CallStatus.CONNECTED, True),
            (CallStatus.CONNECTED, CallStatus.DIALING, False),
            (CallStatus.NEGOTIATION, CallStatus.DIALING, False),
            (CallStatus.DISCOVERY, CallStatus.CONNECTED, False),
            (CallStatus.NEGOTIATION, CallStatus.ENDED, True),
            (CallStatus.DISCOVERY, CallStatus.FAILED, True),
        ],
    )
    def test_events_only_move_forward(self, lifecycle, record, current, status, expected):
        lifecycle.transition(record.id, current)
        assert CallLifecycle.advances(record, status) is expected


class TestHumanDecisions:
    """Tests for human decision checks."""

    @pytest.mark.parametrize(
        ("decision", "status"),
        [
            (HumanDecision.APPROVE, CallStatus.CONFIRMED),
            (HumanDecision.CANCEL, CallStatus.FAILED),
            (HumanDecision.REVISE, CallStatus.NEGOTIATION),
        ],
    )
    def test_targets(self, lifecycle, record, decision, status):
        assert lifecycle.check_human_decision(record, decision) == status

    @pytest.mark.parametrize(
        "terminal", [CallStatus.CONFIRMED, CallStatus.FAILED, CallStatus.ENDED]
    )
    def test_terminal_calls_rejected(self, lifecycle, record, terminal):
        lifecycle.transition(record.id, terminal)
        with pytest.raises(InvalidTransitionError):
            lifecycle.check_human_decision(record, HumanDecision.APPROVE)
