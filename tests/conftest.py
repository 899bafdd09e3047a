"""Shared fixtures for Reservation Caller tests."""

import pytest

from reservation_caller.config import Config
from reservation_caller.models import ReservationRequest
from reservation_caller.services.call_store import CallStore
from reservation_caller.services.coordinator import CallCoordinator
from reservation_caller.services.lifecycle import CallLifecycle
from reservation_caller.services.notifier import (
    ApprovalPrompt,
    LifecycleEvent,
    Notification,
    NotificationBus,
)


class RecordingNotificationBus(NotificationBus):
    """Keeps published notifications in memory instead of sending them."""

    def __init__(self) -> None:
        self.messages: list[Notification] = []

    def publish(self, message: Notification) -> None:
        self.messages.append(message)

    @property
    def events(self) -> list[LifecycleEvent]:
        return [m for m in self.messages if isinstance(m, LifecycleEvent)]

    @property
    def prompts(self) -> list[ApprovalPrompt]:
        return [m for m in self.messages if isinstance(m, ApprovalPrompt)]

    def event_names(self) -> list[str]:
        return [e.event for e in self.events]


class StubTwilio:
    """Stands in for TwilioService with a configured client."""

    def __init__(self, fail: bool = False, sid: str = "CA123456"):
        self.fail = fail
        self.sid = sid
        self.dialed: list[tuple[str, str]] = []

    def is_configured(self) -> bool:
        return True

    def initiate_call(self, to_number: str, call_id: str) -> str:
        self.dialed.append((to_number, call_id))
        if self.fail:
            msg = "Twilio rejected the call"
            raise RuntimeError(msg)
        return self.sid


@pytest.fixture
def config():
    """Configuration with every integration switched off."""
    return Config(
        _env_file=None,
        twilio_account_sid=None,
        twilio_auth_token=None,
        twilio_phone_number=None,
        telegram_bot_token=None,
        telegram_chat_id=None,
        telegram_webhook_secret=None,
        openclaw_callback_url=None,
        openclaw_callback_token=None,
        data_file="",
    )


@pytest.fixture
def make_reservation():
    """Factory for reservation requests with sensible defaults."""

    def _make(**overrides) -> ReservationRequest:
        fields = {
            "business_name": "Chez Test",
            "business_phone": "+15555550100",
            "date": "2026-02-21",
            "time_preferred": "19:00",
            "party_size": 4,
            "name_for_booking": "Felix",
        }
        fields.update(overrides)
        return ReservationRequest(**fields)

    return _make


@pytest.fixture
def reservation(make_reservation):
    return make_reservation()


@pytest.fixture
def store():
    """Fresh in-memory store for each test."""
    return CallStore()


@pytest.fixture
def notifier():
    return RecordingNotificationBus()


@pytest.fixture
def coordinator(store, notifier):
    """Coordinator without a transport (simulated dials)."""
    return CallCoordinator(store=store, notifier=notifier, lifecycle=CallLifecycle(store))


@pytest.fixture
def stub_twilio():
    """The StubTwilio class, for tests that build their own coordinator."""
    return StubTwilio
