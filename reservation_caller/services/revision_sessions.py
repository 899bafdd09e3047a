"""Which chat conversation is expected to send a correction for which call."""

import logging

logger = logging.getLogger(__name__)


class RevisionSessionTracker:
    """One pending call per conversation, kept for the process lifetime only.

    Losing this state on restart just means the human has to press "Revise"
    again.
    """

    def __init__(self) -> None:
        self._pending: dict[str, str] = {}

    def set(self, conversation_id: str, call_id: str) -> None:
        """Remember ``call_id`` for the conversation, replacing any earlier one."""
        previous = self._pending.get(conversation_id)
        if previous and previous != call_id:
            logger.info(
                f"Conversation {conversation_id} switched revision from {previous} to {call_id}"
            )
        self._pending[conversation_id] = call_id

    def get(self, conversation_id: str) -> str | None:
        return self._pending.get(conversation_id)

    def clear(self, conversation_id: str) -> None:
        self._pending.pop(conversation_id, None)
