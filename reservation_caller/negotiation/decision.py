"""Map a parsed business reply onto a negotiation disposition.

Rules are evaluated in order and the first one that returns a decision wins;
rules are never combined. Anything unclear or risky ends up with a human.
"""

import logging
from collections.abc import Callable
from typing import NamedTuple

from reservation_caller.models import (
    Availability,
    Disposition,
    NegotiationDecision,
    ParsedBusinessReply,
    ReservationRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_FLEX_MINUTES = 30


class RuleContext(NamedTuple):
    reply: ParsedBusinessReply
    reservation: ReservationRequest
    flex_minutes: int


Rule = Callable[[RuleContext], NegotiationDecision | None]


def to_minutes(hhmm: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _decision(
    ctx: RuleContext,
    disposition: Disposition,
    reason: str,
    proposed_time: str | None = None,
) -> NegotiationDecision:
    return NegotiationDecision(
        disposition=disposition,
        reason=reason,
        proposed_time=proposed_time,
        notes=ctx.reply.raw,
    )


def no_availability(ctx: RuleContext) -> NegotiationDecision | None:
    if ctx.reply.availability is Availability.NO:
        return _decision(ctx, Disposition.REJECT, "Business reported no availability")
    return None


def callback_requested(ctx: RuleContext) -> NegotiationDecision | None:
    # a callback makes everything else in the reply provisional
    if ctx.reply.needs_callback:
        return _decision(ctx, Disposition.CLARIFY, "Business asked for callback")
    return None


def ambiguous_answer(ctx: RuleContext) -> NegotiationDecision | None:
    if ctx.reply.availability is Availability.UNKNOWN:
        return _decision(ctx, Disposition.CLARIFY, "Ambiguous answer")
    return None


def risk_condition(ctx: RuleContext) -> NegotiationDecision | None:
    if ctx.reply.has_risk:
        return _decision(
            ctx,
            Disposition.NEEDS_APPROVAL,
            "Deposit/cancellation condition detected",
            ctx.reply.first_offer,
        )
    return None


def offered_time(ctx: RuleContext) -> NegotiationDecision | None:
    offer = ctx.reply.first_offer
    if offer is None:
        return None

    diff = abs(to_minutes(offer) - to_minutes(ctx.reservation.time_preferred))
    if diff > ctx.flex_minutes:
        return _decision(
            ctx,
            Disposition.NEEDS_APPROVAL,
            f"Offered time {offer} is outside preferred window "
            f"(+/-{ctx.flex_minutes}m)",
            offer,
        )
    return _decision(
        ctx, Disposition.CONFIRM, "Availability within allowed window", offer
    )


def no_explicit_time(ctx: RuleContext) -> NegotiationDecision:
    return _decision(
        ctx,
        Disposition.NEEDS_APPROVAL,
        "Availability yes but no explicit time extracted",
    )


RULES: list[tuple[str, Rule]] = [
    ("no_availability", no_availability),
    ("callback_requested", callback_requested),
    ("ambiguous_answer", ambiguous_answer),
    ("risk_condition", risk_condition),
    ("offered_time", offered_time),
    ("no_explicit_time", no_explicit_time),
]


def decide_from_reply(
    reply: ParsedBusinessReply,
    reservation: ReservationRequest,
    default_flex_minutes: int = DEFAULT_FLEX_MINUTES,
) -> NegotiationDecision:
    """Pick the disposition for a reply.

    Args:
        reply: Signals extracted from the business's speech
        reservation: The reservation being negotiated
        default_flex_minutes: Window used when the request sets none

    Returns:
        The decision of the first matching rule
    """
    ctx = RuleContext(
        reply=reply,
        reservation=reservation,
        flex_minutes=reservation.flex_minutes(default_flex_minutes),
    )
    for name, rule in RULES:
        decision = rule(ctx)
        if decision is not None:
            logger.debug(f"Rule {name} matched: {decision.disposition.value}")
            return decision

    # unreachable while no_explicit_time closes the list
    return no_explicit_time(ctx)
