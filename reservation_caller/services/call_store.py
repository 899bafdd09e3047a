"""Record store for reservation calls."""

import logging
import uuid
from pathlib import Path

from pydantic import TypeAdapter

from reservation_caller.errors import DuplicateCallError
from reservation_caller.models import (
    CallOutcome,
    CallRecord,
    CallStatus,
    ReservationPatch,
    ReservationRequest,
    Speaker,
    TranscriptEntry,
)
from reservation_caller.models.reservation import utcnow

logger = logging.getLogger(__name__)

_records_adapter = TypeAdapter(list[CallRecord])


class CallStore:
    """Keyed, mutable store of call records.

    Records live in memory and, when ``data_file`` is given, are mirrored to a
    JSON file after every mutation. Mutators called with an unknown id log a
    warning and do nothing. Writers are expected to be serialised per call id.
    """

    def __init__(self, data_file: str | Path | None = None) -> None:
        self._calls: dict[str, CallRecord] = {}
        self._data_file = Path(data_file) if data_file else None
        self._load()

    @staticmethod
    def generate_call_id() -> str:
        """Generate a unique call identifier.

        Returns:
            UUID-based call ID
        """
        return str(uuid.uuid4())

    def _load(self) -> None:
        if self._data_file is None or not self._data_file.exists():
            return
        raw = self._data_file.read_text(encoding="utf-8")
        if not raw.strip():
            return
        for record in _records_adapter.validate_json(raw):
            self._calls[record.id] = record
        logger.info(f"Loaded {len(self._calls)} calls from {self._data_file}")

    def _persist(self) -> None:
        if self._data_file is None:
            return
        self._data_file.parent.mkdir(parents=True, exist_ok=True)
        self._data_file.write_bytes(
            _records_adapter.dump_json(list(self._calls.values()), indent=2)
        )

    def _touch(self, record: CallRecord) -> None:
        record.updated_at = utcnow()
        self._persist()

    def _lookup(self, call_id: str, action: str) -> CallRecord | None:
        record = self._calls.get(call_id)
        if record is None:
            logger.warning(f"Attempted to {action} non-existent call {call_id}")
        return record

    def create(self, reservation: ReservationRequest) -> CallRecord:
        """Register a new call in ``INIT``.

        The reservation's ``request_id`` becomes the call id when set.

        Args:
            reservation: The booking intent

        Returns:
            The new CallRecord

        Raises:
            DuplicateCallError: If a call with that id already exists
        """
        call_id = reservation.request_id or self.generate_call_id()
        if call_id in self._calls:
            raise DuplicateCallError(call_id)
        now = utcnow()
        record = CallRecord(
            id=call_id,
            reservation=reservation.model_copy(update={"request_id": call_id}),
            status=CallStatus.INIT,
            created_at=now,
            updated_at=now,
            transcript=[
                TranscriptEntry(at=now, speaker=Speaker.SYSTEM, text="Call created")
            ],
        )
        self._calls[call_id] = record
        self._persist()
        logger.info(f"Created call {call_id}")
        return record

    def get(self, call_id: str) -> CallRecord | None:
        """Get a call record by id, or None if unknown."""
        return self._calls.get(call_id)

    def list(self) -> list[CallRecord]:
        """All call records in creation order."""
        return list(self._calls.values())

    def update_status(self, call_id: str, status: CallStatus) -> None:
        record = self._lookup(call_id, "update status of")
        if record is None:
            return
        record.status = status
        self._touch(record)

    def append_transcript(self, call_id: str, speaker: Speaker, text: str) -> None:
        """Add a line to the conversation transcript.

        Args:
            call_id: Call identifier
            speaker: Who said it
            text: Transcript text to append
        """
        record = self._lookup(call_id, "append transcript to")
        if record is None:
            return
        record.transcript.append(TranscriptEntry(speaker=speaker, text=text))
        logger.debug(f"Call {call_id} transcript [{speaker.value}]: {text}")
        self._touch(record)

    def set_outcome(self, call_id: str, outcome: CallOutcome | None) -> None:
        """Replace the call's outcome; None clears it."""
        record = self._lookup(call_id, "set outcome of")
        if record is None:
            return
        record.outcome = outcome
        self._touch(record)

    def update_reservation(self, call_id: str, patch: ReservationPatch) -> None:
        """Merge only the supplied patch fields into the reservation."""
        record = self._lookup(call_id, "update reservation of")
        if record is None:
            return
        record.reservation = record.reservation.model_copy(update=patch.fields())
        self._touch(record)

    def attach_call_sid(self, call_id: str, call_sid: str) -> None:
        """Link the call to its Twilio call SID."""
        record = self._lookup(call_id, "attach SID to")
        if record is None:
            return
        record.external_call_sid = call_sid
        logger.info(f"Call {call_id} linked to Twilio SID {call_sid}")
        self._touch(record)
