"""Reply interpretation and negotiation rules."""

from reservation_caller.negotiation.decision import RULES, decide_from_reply
from reservation_caller.negotiation.extract import parse_business_reply
from reservation_caller.negotiation.policy import (
    build_assistant_intro,
    closing_line,
    needs_human_confirmation,
)
from reservation_caller.negotiation.revision_parser import parse_revision_text

__all__ = [
    "RULES",
    "build_assistant_intro",
    "closing_line",
    "decide_from_reply",
    "needs_human_confirmation",
    "parse_business_reply",
    "parse_revision_text",
]
