"""FastAPI server for Twilio webhooks, approval channels and the call API."""

import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from reservation_caller.config import Config, get_config, setup_logging
from reservation_caller.errors import CallNotFoundError, ReservationCallerError
from reservation_caller.models import (
    HumanDecision,
    ReservationPatch,
    ReservationRequest,
)
from reservation_caller.negotiation import (
    build_assistant_intro,
    closing_line,
    parse_revision_text,
)
from reservation_caller.negotiation.policy import CLARIFY_QUESTION, DISCOVERY_QUESTION
from reservation_caller.services.call_store import CallStore
from reservation_caller.services.coordinator import CallCoordinator
from reservation_caller.services.lifecycle import CallLifecycle
from reservation_caller.services.notifier import OpenClawService, QueueNotificationBus
from reservation_caller.services.revision_sessions import RevisionSessionTracker
from reservation_caller.services.telegram_service import (
    TelegramService,
    parse_callback_data,
)
from reservation_caller.services.twilio_service import TwilioService

logger = logging.getLogger(__name__)

REVISION_EXAMPLE = "2026-02-22 20:00 for 2"

router = APIRouter()


class DecisionBody(BaseModel):
    decision: HumanDecision
    notes: str | None = None


class OpenClawDecisionBody(DecisionBody):
    call_id: str = Field(..., min_length=1)


class RecallBody(ReservationPatch):
    notes: str | None = None

    def patch(self) -> ReservationPatch:
        return ReservationPatch(**self.model_dump(exclude={"notes"}))


class ProposedOutcomeBody(BaseModel):
    note: str = "No risk noted"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Builds the store, tracker and service objects for this process and keeps
    them on ``app.state``.
    """
    config: Config = getattr(app.state, "config", None) or get_config()
    logger.info(
        f"Starting Reservation Caller on {config.server_host}:{config.server_port}"
    )
    logger.info(f"Public base URL: {config.app_base_url}")

    store = CallStore(config.data_file or None)
    twilio = TwilioService(config)
    telegram = TelegramService(config)
    notifier = QueueNotificationBus(OpenClawService(config), telegram)
    notifier.start()

    app.state.config = config
    app.state.store = store
    app.state.twilio = twilio
    app.state.telegram = telegram
    app.state.notifier = notifier
    app.state.revisions = RevisionSessionTracker()
    app.state.coordinator = CallCoordinator(
        store=store,
        notifier=notifier,
        twilio=twilio,
        lifecycle=CallLifecycle(store, config.max_clarification_attempts),
        default_flex_minutes=config.default_time_flex_minutes,
    )

    yield

    logger.info("Shutting down Reservation Caller")
    await notifier.stop()


async def _reservation_error(_request: Request, exc: ReservationCallerError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def _validation_error(_request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": errors})


def create_app(config: Config | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Configuration to use instead of the global one (tests)

    Returns:
        The application; services are created on startup
    """
    app = FastAPI(
        title="Reservation Caller API",
        description="Phone reservation negotiation with human approval",
        version="0.1.0",
        lifespan=lifespan,
    )
    if config is not None:
        app.state.config = config
    app.add_exception_handler(ReservationCallerError, _reservation_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.include_router(router)
    return app


def get_coordinator(request: Request) -> CallCoordinator:
    """Dependency to get the call coordinator from app state.

    Raises:
        HTTPException: If the app has not started yet
    """
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Services not initialized yet")
    return coordinator


async def verify_twilio_request(request: Request) -> None:
    """Reject Twilio webhooks with a bad X-Twilio-Signature."""
    twilio: TwilioService = request.app.state.twilio
    if not twilio.is_configured():
        return

    config: Config = request.app.state.config
    url = f"{config.app_base_url.rstrip('/')}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    params = {key: str(value) for key, value in (await request.form()).items()}
    signature = request.headers.get("x-twilio-signature", "")

    if not twilio.validate_request(url, params, signature):
        logger.warning(f"Rejected Twilio webhook with bad signature: {request.url.path}")
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")


def twiml(content: str) -> Response:
    return Response(content=content, media_type="text/xml")


# Health and call API


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    return {"ok": True, "twilio_configured": request.app.state.twilio.is_configured()}


@router.get("/api/calls")
async def list_calls(coordinator: CallCoordinator = Depends(get_coordinator)):
    return {"calls": coordinator.store.list()}


@router.get("/api/calls/{call_id}")
async def get_call(call_id: str, coordinator: CallCoordinator = Depends(get_coordinator)):
    record = coordinator.store.get(call_id)
    if record is None:
        raise CallNotFoundError(call_id)
    return {"call": record}


@router.post("/api/calls/start", status_code=202)
async def start_call(
    reservation: ReservationRequest,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Create a call record and dial the business.

    Returns 202 once the call is queued (or simulated when Twilio is not
    configured) and 502 when Twilio refuses it.
    """
    result = await run_in_threadpool(coordinator.start_call, reservation)
    mode = "simulation mode" if result.simulated else "Twilio"
    return {
        "message": f"Call queued ({mode})",
        "call_id": result.call.id,
        "simulated": result.simulated,
        "twilio_call_sid": result.call_sid,
    }


@router.post("/api/calls/{call_id}/approve")
async def decide_call(
    call_id: str,
    body: DecisionBody,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    record = coordinator.apply_decision(call_id, body.decision, body.notes)
    return {"ok": True, "call": record}


@router.post("/api/calls/{call_id}/recall")
async def recall_call(
    call_id: str,
    body: RecallBody,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    result = await run_in_threadpool(
        coordinator.apply_recall, call_id, body.patch(), body.notes
    )
    return {
        "ok": True,
        "simulated": result.simulated,
        "call": result.call,
        "twilio_call_sid": result.call_sid,
    }


@router.post("/api/mock/proposed-outcome/{call_id}")
async def propose_outcome(
    call_id: str,
    body: ProposedOutcomeBody,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Record a proposed outcome from a note, for exercising the approval flow."""
    return {"ok": True, "call": coordinator.propose_outcome(call_id, body.note)}


# Twilio webhooks


@router.post("/api/twilio/voice", dependencies=[Depends(verify_twilio_request)])
async def twilio_voice(
    request: Request,
    call_id: str = Query(..., alias="callId"),
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """TwiML for an answered call: introduce, ask, listen."""
    record = coordinator.begin_discovery(call_id)
    twilio: TwilioService = request.app.state.twilio
    return twiml(
        twilio.discovery_twiml(
            call_id, build_assistant_intro(record.reservation), DISCOVERY_QUESTION
        )
    )


@router.post("/api/twilio/gather", dependencies=[Depends(verify_twilio_request)])
async def twilio_gather(
    request: Request,
    call_id: str = Query(..., alias="callId"),
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Handle transcribed speech from the business and answer with TwiML."""
    form = await request.form()
    speech = str(form.get("SpeechResult") or "").strip()

    result = coordinator.apply_reply(call_id, speech)
    record = coordinator.store.get(call_id)
    twilio: TwilioService = request.app.state.twilio

    goodbye = closing_line(
        result.status,
        record.reservation.name_for_booking,
        heard=result.decision is not None or result.ignored,
        escalated=result.escalated,
    )
    if goodbye is None:
        return twiml(twilio.follow_up_twiml(call_id, CLARIFY_QUESTION))
    return twiml(twilio.goodbye_twiml(goodbye))


@router.post("/api/twilio/status", dependencies=[Depends(verify_twilio_request)])
async def twilio_status(
    request: Request,
    call_id: str | None = Query(None, alias="callId"),
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Apply a Twilio status callback to the call."""
    form = await request.form()
    call_id = call_id or str(form.get("callId") or "")
    status = str(form.get("CallStatus") or form.get("status") or "")
    if not call_id or not status:
        return JSONResponse(
            status_code=400, content={"error": "callId and status required"}
        )

    error_code = form.get("ErrorCode")
    if error_code:
        logger.error(f"Twilio error {error_code}: {form.get('ErrorMessage')}")

    answered_by = form.get("AnsweredBy")
    coordinator.apply_transport_event(
        call_id, status, str(answered_by) if answered_by else None
    )
    return {"ok": True}


# Orchestration callback


@router.post("/api/openclaw/callback")
async def openclaw_callback(
    request: Request,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Describe the actions available for an event the orchestrator received."""
    data = await request.json()
    event = str(data.get("event") or "")
    call_id = str(data.get("call_id") or data.get("callId") or "")
    if not event:
        return JSONResponse(status_code=400, content={"error": "event required"})

    if event == "approval_required":
        record = coordinator.store.get(call_id)
        if record is None:
            raise CallNotFoundError(call_id)
        reservation = record.reservation
        return {
            "ok": True,
            "message": (
                f"Approval needed: {reservation.business_name} for "
                f"{reservation.party_size} on {reservation.date} "
                f"{reservation.time_preferred}."
            ),
            "actions": [
                {
                    "label": decision.value.capitalize(),
                    "method": "POST",
                    "path": "/api/openclaw/decision",
                    "body": {"call_id": call_id, "decision": decision.value},
                }
                for decision in HumanDecision
            ],
        }

    return {"ok": True, "event": event, "call_id": call_id}


@router.post("/api/openclaw/decision")
async def openclaw_decision(
    body: OpenClawDecisionBody,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    record = coordinator.apply_decision(body.call_id, body.decision, body.notes)
    return {"ok": True, "call": record}


# Telegram approval channel


@router.post("/api/telegram/webhook")
async def telegram_webhook(
    request: Request,
    coordinator: CallCoordinator = Depends(get_coordinator),
):
    """Handle revision text messages and approve/revise/cancel button presses."""
    config: Config = request.app.state.config
    if config.telegram_webhook_secret:
        got = request.headers.get("x-telegram-bot-api-secret-token", "")
        if got != config.telegram_webhook_secret:
            return JSONResponse(
                status_code=403, content={"error": "Invalid Telegram secret"}
            )

    update = await request.json()
    telegram: TelegramService = request.app.state.telegram
    revisions: RevisionSessionTracker = request.app.state.revisions

    message = update.get("message") or {}
    chat_id = (message.get("chat") or {}).get("id")
    text = message.get("text")
    if chat_id and isinstance(text, str):
        pending_call_id = revisions.get(str(chat_id))
        if pending_call_id:
            return await _handle_revision_text(
                coordinator, telegram, revisions, str(chat_id), pending_call_id, text
            )

    callback = update.get("callback_query")
    if not callback:
        return {"ok": True}
    return await _handle_callback_query(coordinator, telegram, revisions, callback)


async def _handle_revision_text(
    coordinator: CallCoordinator,
    telegram: TelegramService,
    revisions: RevisionSessionTracker,
    chat_id: str,
    call_id: str,
    text: str,
) -> dict[str, Any]:
    patch = parse_revision_text(text)
    if patch.is_empty():
        await telegram.send_message(
            chat_id, f"I couldn't parse changes. Try: {REVISION_EXAMPLE}"
        )
        return {"ok": True, "message": "No revision fields parsed"}

    try:
        result = await run_in_threadpool(coordinator.apply_recall, call_id, patch, text)
    except ReservationCallerError as e:
        revisions.clear(chat_id)
        await telegram.send_message(chat_id, f"❌ Revision failed for {call_id}: {e}")
        return {"ok": True, "message": f"Revision failed: {e}"}

    revisions.clear(chat_id)
    when = " ".join(v for v in (patch.date, patch.time_preferred) if v) or "(unchanged)"
    party = str(patch.party_size) if patch.party_size is not None else "(unchanged)"
    lines = [f"🔁 Recall queued for {call_id}", f"When: {when}", f"Party size: {party}"]
    if result.simulated:
        lines.append("Mode: simulation")
    await telegram.send_message(chat_id, "\n".join(lines))

    return {
        "ok": True,
        "message": "Revision accepted and recall queued",
        "call_id": call_id,
        "simulated": result.simulated,
        "twilio_call_sid": result.call_sid,
    }


async def _handle_callback_query(
    coordinator: CallCoordinator,
    telegram: TelegramService,
    revisions: RevisionSessionTracker,
    callback: dict[str, Any],
) -> dict[str, Any]:
    callback_id = str(callback.get("id", ""))
    parsed = parse_callback_data(str(callback.get("data") or ""))
    if parsed is None:
        await telegram.answer_callback_query(callback_id, "Unknown action")
        return {"ok": True}

    decision, call_id = parsed
    cb_message = callback.get("message") or {}
    chat_id = (cb_message.get("chat") or {}).get("id")
    message_id = cb_message.get("message_id")

    if decision == HumanDecision.REVISE.value:
        if chat_id:
            revisions.set(str(chat_id), call_id)
        await telegram.answer_callback_query(
            callback_id, f"Send new time/date, e.g. '{REVISION_EXAMPLE}'"
        )
        if chat_id and message_id:
            await telegram.edit_message(
                chat_id,
                message_id,
                f"✏️ Send revised details now (example: {REVISION_EXAMPLE}). Call {call_id}",
            )
        return {"ok": True, "action": "revise_requested", "call_id": call_id}

    try:
        record = coordinator.apply_decision(call_id, decision)
    except ReservationCallerError as e:
        await telegram.answer_callback_query(callback_id, str(e))
        return {"ok": True}

    await telegram.answer_callback_query(callback_id, f"Decision saved: {decision}")
    if chat_id and message_id:
        await telegram.edit_message(
            chat_id, message_id, f"✅ Decision recorded: {decision} (call {call_id})"
        )
    return {"ok": True, "call": record}


app = create_app()


def run_server():
    """Run the FastAPI server using uvicorn.

    This is the main entry point for the server.
    """
    setup_logging()
    config = get_config()

    uvicorn.run(
        "reservation_caller.server:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run_server()
