"""Tests for chat revisions: the text parser and the session tracker."""

import pytest

from reservation_caller.negotiation import parse_revision_text
from reservation_caller.services.revision_sessions import RevisionSessionTracker


class TestParseRevisionText:
    """Tests for parse_revision_text."""

    def test_all_fields(self):
        patch = parse_revision_text("2026-02-22 20:00 for 2")

        assert patch.date == "2026-02-22"
        assert patch.time_preferred == "20:00"
        assert patch.party_size == 2

    def test_for_time_is_not_party(self):
        patch = parse_revision_text("for 20:00")

        assert patch.time_preferred == "20:00"
        assert patch.party_size is None

    @pytest.mark.parametrize(
        ("text", "size"),
        [("party of 6", 6), ("make it 3 people", 3), ("size 8", 8), ("5 guests", 5)],
    )
    def test_party_forms(self, text, size):
        assert parse_revision_text(text).party_size == size

    def test_h_separator(self):
        assert parse_revision_text("at 7h30 please").time_preferred == "07:30"

    def test_only_date(self):
        patch = parse_revision_text("move it to 2026-03-01")
        assert patch.fields() == {"date": "2026-03-01"}

    @pytest.mark.parametrize("text", ["", "no idea", "party of 0"])
    def test_nothing_parsed(self, text):
        assert parse_revision_text(text).is_empty()


class TestRevisionSessionTracker:
    """Tests for RevisionSessionTracker."""

    def test_set_get_clear(self):
        tracker = RevisionSessionTracker()
        assert tracker.get("chat-1") is None

        tracker.set("chat-1", "call-a")
        assert tracker.get("chat-1") == "call-a"

        tracker.clear("chat-1")
        assert tracker.get("chat-1") is None

    def test_latest_call_wins(self):
        tracker = RevisionSessionTracker()
        tracker.set("chat-1", "call-a")
        tracker.set("chat-1", "call-b")
        assert tracker.get("chat-1") == "call-b"

    def test_conversations_independent(self):
        tracker = RevisionSessionTracker()
        tracker.set("chat-1", "call-a")
        tracker.set("chat-2", "call-b")
        tracker.clear("chat-1")

        assert tracker.get("chat-2") == "call-b"

    def test_clear_unknown(self):
        RevisionSessionTracker().clear("never-set")
