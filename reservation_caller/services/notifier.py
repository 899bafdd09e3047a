"""Fire-and-forget notifications for call lifecycle events.

The coordinator only ever calls :meth:`NotificationBus.publish`, which must
not raise. :class:`QueueNotificationBus` hands messages to a background task
that delivers them to the orchestration callback and the Telegram approval
channel; delivery failures are logged and dropped.
"""

import asyncio
import contextlib
import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from reservation_caller.config import Config, get_config
from reservation_caller.services.telegram_service import TelegramService

logger = logging.getLogger(__name__)

EventName = Literal[
    "approval_required", "call_confirmed", "call_failed", "call_cancelled"
]


class LifecycleEvent(BaseModel):
    """Event forwarded to the orchestration callback URL."""

    event: EventName
    payload: dict[str, Any] = Field(default_factory=dict)


class ApprovalPrompt(BaseModel):
    """Request for a human to approve, revise or cancel a call."""

    call_id: str
    business_name: str
    date: str
    time: str
    party_size: int
    notes: str | None = None


Notification = LifecycleEvent | ApprovalPrompt


class NotificationBus:
    """Interface the coordinator publishes to."""

    def publish(self, message: Notification) -> None:
        raise NotImplementedError


class OpenClawService:
    """Posts lifecycle events to the orchestration callback URL."""

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or get_config()
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.config.openclaw_callback_url)

    async def notify(self, event: str, payload: dict[str, Any]) -> None:
        """Best-effort POST of ``{"event": ..., **payload}``."""
        if not self.is_configured():
            return

        headers = {}
        if self.config.openclaw_callback_token:
            headers["Authorization"] = f"Bearer {self.config.openclaw_callback_token}"
        body = {"event": event, **payload}

        try:
            if self._client is not None:
                response = await self._client.post(
                    self.config.openclaw_callback_url, json=body, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(
                        self.config.openclaw_callback_url, json=body, headers=headers
                    )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Callback for {event} failed: {e}")


class QueueNotificationBus(NotificationBus):
    """Queues notifications and delivers them from a background task.

    ``publish`` is safe to call from any thread once :meth:`start` has run
    inside the event loop; before that, messages are dropped with a warning.
    """

    def __init__(self, events: OpenClawService, approvals: TelegramService) -> None:
        self.events = events
        self.approvals = approvals
        self._queue: asyncio.Queue[Notification] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._worker: asyncio.Task[None] | None = None

    def publish(self, message: Notification) -> None:
        if self._loop is None or self._loop.is_closed():
            logger.warning(f"Notification bus not running, dropping {message!r}")
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    def start(self) -> None:
        """Start the delivery task on the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._worker = asyncio.create_task(self._run())
        logger.info("Notification bus started")

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the worker."""
        if self._worker is None:
            return
        # publishes scheduled with call_soon_threadsafe land on the next loop pass
        await asyncio.sleep(0)
        await self._queue.join()
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        self._loop = None
        logger.info("Notification bus stopped")

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.deliver(message)
            except Exception:
                logger.exception(f"Failed to deliver {type(message).__name__}")
            finally:
                self._queue.task_done()

    async def deliver(self, message: Notification) -> None:
        if isinstance(message, ApprovalPrompt):
            await self.approvals.send_approval_prompt(
                call_id=message.call_id,
                business_name=message.business_name,
                date=message.date,
                time=message.time,
                party_size=message.party_size,
                notes=message.notes,
            )
        else:
            await self.events.notify(message.event, message.payload)
