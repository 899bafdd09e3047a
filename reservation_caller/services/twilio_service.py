"""Twilio service for placing reservation calls and speaking to the business."""

import logging
from urllib.parse import quote

from twilio.request_validator import RequestValidator
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from reservation_caller.config import Config, get_config

logger = logging.getLogger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


def _with_call_id(path: str, call_id: str) -> str:
    return f"{path}?callId={quote(call_id, safe='')}"


class TwilioService:
    """Service for outbound calls, webhook verification and TwiML.

    This service handles:
    - Initiating outbound calls that point back at our webhooks
    - Verifying X-Twilio-Signature on incoming webhooks
    - Building the spoken prompts for each step of the conversation
    """

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the Twilio service."""
        self.config = config or get_config()
        if not self.config.has_twilio_config():
            logger.warning("Twilio not configured - calls will be simulated")
            self.client = None
            self.validator = None
        else:
            self.client = Client(
                self.config.twilio_account_sid, self.config.twilio_auth_token
            )
            self.validator = RequestValidator(self.config.twilio_auth_token)
            logger.info("Twilio service initialized")

    def is_configured(self) -> bool:
        """Check if Twilio is properly configured.

        Returns:
            True if Twilio credentials are set, False otherwise
        """
        return self.client is not None

    def webhook_url(self, path: str, call_id: str) -> str:
        return f"{self.config.app_base_url.rstrip('/')}{_with_call_id(path, call_id)}"

    def initiate_call(self, to_number: str, call_id: str) -> str:
        """Initiate an outbound call for ``call_id``.

        Args:
            to_number: The business phone number
            call_id: Our call identifier, passed back on every webhook

        Returns:
            Call SID

        Raises:
            ValueError: If Twilio is not configured
            Exception: If call initiation fails
        """
        if not self.client:
            msg = "Twilio is not configured"
            raise ValueError(msg)

        call_params = {
            "to": to_number,
            "from_": self.config.twilio_phone_number,
            "url": self.webhook_url("/api/twilio/voice", call_id),
            "status_callback": self.webhook_url("/api/twilio/status", call_id),
            "status_callback_method": "POST",
            "status_callback_event": STATUS_CALLBACK_EVENTS,
        }
        if self.config.twilio_machine_detection:
            call_params["machine_detection"] = "Enable"

        try:
            logger.info(f"Initiating call to {to_number} for {call_id}")
            call = self.client.calls.create(**call_params)

        except Exception:
            logger.exception("Failed to initiate call")
            raise
        else:
            logger.info(f"Call initiated with SID: {call.sid}")
            return call.sid

    def validate_request(self, url: str, params: dict[str, str], signature: str) -> bool:
        """Check a webhook's X-Twilio-Signature.

        Always passes when Twilio is not configured (simulation mode).
        """
        if self.validator is None:
            return True
        return self.validator.validate(url, params, signature)

    # TwiML

    def _gather(self, response: VoiceResponse, call_id: str) -> None:
        gather = response.gather(
            input="speech",
            speech_timeout="auto",
            action=_with_call_id("/api/twilio/gather", call_id),
            method="POST",
        )
        gather.say("I am listening.", voice=self.config.twilio_voice)

    def discovery_twiml(self, call_id: str, intro: str, question: str) -> str:
        """Introduce ourselves, ask about availability and listen."""
        response = VoiceResponse()
        response.say(intro, voice=self.config.twilio_voice)
        response.say(question, voice=self.config.twilio_voice)
        self._gather(response, call_id)
        response.say("Sorry, I did not catch that.", voice=self.config.twilio_voice)
        response.redirect(_with_call_id("/api/twilio/voice", call_id), method="POST")
        return str(response)

    def follow_up_twiml(self, call_id: str, question: str) -> str:
        """Ask again and keep listening."""
        response = VoiceResponse()
        response.say(question, voice=self.config.twilio_voice)
        self._gather(response, call_id)
        return str(response)

    def goodbye_twiml(self, message: str) -> str:
        """Say ``message`` and hang up."""
        response = VoiceResponse()
        response.say(message, voice=self.config.twilio_voice)
        response.hangup()
        return str(response)
