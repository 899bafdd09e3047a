"""Tests for the HTTP API and webhooks."""

import pytest
from fastapi.testclient import TestClient

from reservation_caller.negotiation.policy import CLARIFY_QUESTION, NO_SPEECH_GOODBYE
from reservation_caller.server import create_app

RESERVATION = {
    "business_name": "Chez Test",
    "business_phone": "+15555550100",
    "date": "2026-02-21",
    "time_preferred": "19:00",
    "party_size": 4,
    "name_for_booking": "Felix",
}


@pytest.fixture
def client(config):
    """Test client with services started in simulation mode."""
    with TestClient(create_app(config)) as client:
        yield client


@pytest.fixture
def call_id(client):
    response = client.post("/api/calls/start", json=RESERVATION)
    return response.json()["call_id"]


def get_call(client, call_id):
    return client.get(f"/api/calls/{call_id}").json()["call"]


def gather(client, call_id, speech):
    return client.post(
        "/api/twilio/gather", params={"callId": call_id}, data={"SpeechResult": speech}
    )


class TestCallApi:
    """Tests for the call API."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {"ok": True, "twilio_configured": False}

    def test_start_call(self, client):
        response = client.post("/api/calls/start", json=RESERVATION)

        assert response.status_code == 202
        data = response.json()
        assert data["simulated"] is True
        assert data["twilio_call_sid"].startswith("SIM-")

        call = get_call(client, data["call_id"])
        assert call["status"] == "DIALING"
        assert call["reservation"]["business_name"] == "Chez Test"

    def test_start_call_invalid(self, client):
        response = client.post("/api/calls/start", json={**RESERVATION, "party_size": 0})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_start_call_duplicate_request_id(self, client):
        reservation = {**RESERVATION, "request_id": "req-42"}
        assert client.post("/api/calls/start", json=reservation).status_code == 202

        response = client.post(
            "/api/calls/start", json={**reservation, "party_size": 8}
        )

        assert response.status_code == 409
        assert response.json() == {"error": "Call req-42 already exists"}
        assert get_call(client, "req-42")["reservation"]["party_size"] == 4

    def test_list_calls(self, client, call_id):
        calls = client.get("/api/calls").json()["calls"]
        assert [c["id"] for c in calls] == [call_id]

    def test_unknown_call(self, client):
        response = client.get("/api/calls/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Call not found"}


class TestTwilioWebhooks:
    """Tests for the Twilio voice, gather and status webhooks."""

    def test_voice(self, client, call_id):
        response = client.post("/api/twilio/voice", params={"callId": call_id})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert "<Gather" in response.text
        assert get_call(client, call_id)["status"] == "DISCOVERY"

    def test_gather_confirm(self, client, call_id):
        response = gather(client, call_id, "Yes we have a table at 19:30, no deposit needed")

        assert "Please confirm the reservation under Felix" in response.text
        assert "<Hangup" in response.text
        call = get_call(client, call_id)
        assert call["status"] == "CONFIRMED"
        assert call["outcome"]["confirmed_details"]["time"] == "19:30"

    def test_gather_after_confirm_says_goodbye(self, client, call_id):
        gather(client, call_id, "Yes we have a table at 19:30, no deposit needed")

        response = gather(client, call_id, "Actually we are fully booked")

        assert "Please confirm the reservation under Felix" in response.text
        assert "<Hangup" in response.text
        call = get_call(client, call_id)
        assert call["status"] == "CONFIRMED"
        assert call["outcome"]["confirmed_details"]["time"] == "19:30"

    def test_gather_clarify_keeps_listening(self, client, call_id):
        response = gather(client, call_id, "Hmm, let me see")

        assert CLARIFY_QUESTION in response.text
        assert "<Gather" in response.text
        assert get_call(client, call_id)["status"] == "NEGOTIATION"

    def test_gather_approval(self, client, call_id):
        response = gather(client, call_id, "Yes, we can do 20:15")

        assert "I need to confirm final details with Felix" in response.text
        call = get_call(client, call_id)
        assert call["status"] == "WAITING_USER_APPROVAL"
        assert call["outcome"]["needs_user_approval"] is True

    def test_gather_no_speech(self, client, call_id):
        response = gather(client, call_id, "")

        assert NO_SPEECH_GOODBYE in response.text
        assert get_call(client, call_id)["status"] == "FAILED"

    def test_status(self, client, call_id):
        response = client.post(
            "/api/twilio/status", params={"callId": call_id}, data={"CallStatus": "busy"}
        )

        assert response.json() == {"ok": True}
        call = get_call(client, call_id)
        assert call["status"] == "FAILED"
        assert call["outcome"]["reason"] == "Call busy"

    def test_status_missing_fields(self, client):
        response = client.post("/api/twilio/status", data={})
        assert response.status_code == 400

    def test_status_unknown_call(self, client):
        response = client.post(
            "/api/twilio/status", params={"callId": "missing"}, data={"CallStatus": "busy"}
        )
        assert response.status_code == 404


class TestDecisions:
    """Tests for approval and recall endpoints."""

    @pytest.fixture
    def waiting_id(self, client, call_id):
        gather(client, call_id, "Yes, we can do 20:15")
        return call_id

    def test_approve(self, client, waiting_id):
        response = client.post(
            f"/api/calls/{waiting_id}/approve", json={"decision": "approve"}
        )

        assert response.status_code == 200
        assert response.json()["call"]["status"] == "CONFIRMED"

    def test_invalid_decision(self, client, waiting_id):
        response = client.post(
            f"/api/calls/{waiting_id}/approve", json={"decision": "maybe"}
        )
        assert response.status_code == 400

    def test_decision_on_finished_call(self, client, waiting_id):
        client.post(f"/api/calls/{waiting_id}/approve", json={"decision": "cancel"})

        response = client.post(
            f"/api/calls/{waiting_id}/approve", json={"decision": "approve"}
        )

        assert response.status_code == 409
        assert get_call(client, waiting_id)["status"] == "FAILED"

    def test_recall(self, client, waiting_id):
        response = client.post(
            f"/api/calls/{waiting_id}/recall", json={"date": "2026-02-22"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["simulated"] is True
        assert data["call"]["status"] == "DIALING"
        assert data["call"]["outcome"] is None
        assert data["call"]["reservation"]["date"] == "2026-02-22"
        assert data["call"]["reservation"]["time_preferred"] == "19:00"

    def test_recall_empty(self, client, waiting_id):
        response = client.post(f"/api/calls/{waiting_id}/recall", json={"notes": "x"})
        assert response.status_code == 400

    def test_recall_unknown(self, client):
        response = client.post("/api/calls/missing/recall", json={"party_size": 2})
        assert response.status_code == 404

    def test_proposed_outcome(self, client, call_id):
        response = client.post(
            f"/api/mock/proposed-outcome/{call_id}",
            json={"note": "Deposit of 20 EUR required"},
        )

        assert response.json()["call"]["status"] == "WAITING_USER_APPROVAL"


class TestOpenClaw:
    """Tests for the orchestration callback endpoints."""

    def test_approval_actions(self, client, call_id):
        response = client.post(
            "/api/openclaw/callback",
            json={"event": "approval_required", "call_id": call_id},
        )

        data = response.json()
        assert "Approval needed: Chez Test" in data["message"]
        assert [a["body"]["decision"] for a in data["actions"]] == [
            "approve",
            "revise",
            "cancel",
        ]

    def test_other_event_echoed(self, client):
        response = client.post(
            "/api/openclaw/callback", json={"event": "call_failed", "call_id": "x"}
        )
        assert response.json() == {"ok": True, "event": "call_failed", "call_id": "x"}

    def test_missing_event(self, client):
        response = client.post("/api/openclaw/callback", json={})
        assert response.status_code == 400

    def test_decision(self, client, call_id):
        gather(client, call_id, "Yes, we can do 20:15")

        response = client.post(
            "/api/openclaw/decision", json={"call_id": call_id, "decision": "cancel"}
        )

        assert response.json()["call"]["status"] == "FAILED"


class TestTelegramWebhook:
    """Tests for Telegram button presses and revision messages."""

    def callback(self, client, data):
        return client.post(
            "/api/telegram/webhook",
            json={
                "callback_query": {
                    "id": "cb-1",
                    "data": data,
                    "message": {"message_id": 7, "chat": {"id": 42}},
                }
            },
        )

    def message(self, client, text):
        return client.post(
            "/api/telegram/webhook",
            json={"message": {"chat": {"id": 42}, "text": text}},
        )

    def test_approve_button(self, client, call_id):
        gather(client, call_id, "Yes, we can do 20:15")

        response = self.callback(client, f"rc|approve|{call_id}")

        assert response.json()["call"]["status"] == "CONFIRMED"

    def test_revise_then_message(self, client, call_id):
        """Test that a revise press followed by a message recalls the business."""
        gather(client, call_id, "Yes, we can do 20:15")

        response = self.callback(client, f"rc|revise|{call_id}")
        assert response.json() == {
            "ok": True,
            "action": "revise_requested",
            "call_id": call_id,
        }

        response = self.message(client, "2026-02-22 20:00 for 2")
        data = response.json()
        assert data["message"] == "Revision accepted and recall queued"
        assert data["simulated"] is True

        call = get_call(client, call_id)
        assert call["status"] == "DIALING"
        assert call["reservation"]["date"] == "2026-02-22"
        assert call["reservation"]["time_preferred"] == "20:00"
        assert call["reservation"]["party_size"] == 2

        # session is cleared once the recall is queued
        assert self.message(client, "2026-02-23 21:00").json() == {"ok": True}

    def test_unparseable_revision_keeps_session(self, client, call_id):
        self.callback(client, f"rc|revise|{call_id}")

        response = self.message(client, "whenever works")
        assert response.json()["message"] == "No revision fields parsed"

        response = self.message(client, "party of 3")
        assert response.json()["message"] == "Revision accepted and recall queued"

    def test_unknown_button(self, client):
        assert self.callback(client, "garbage").json() == {"ok": True}

    def test_message_without_session(self, client):
        assert self.message(client, "hello").json() == {"ok": True}

    def test_secret_checked(self, config):
        app = create_app(config.model_copy(update={"telegram_webhook_secret": "s3"}))
        with TestClient(app) as client:
            denied = client.post("/api/telegram/webhook", json={})
            allowed = client.post(
                "/api/telegram/webhook",
                json={},
                headers={"X-Telegram-Bot-Api-Secret-Token": "s3"},
            )

        assert denied.status_code == 403
        assert allowed.json() == {"ok": True}
