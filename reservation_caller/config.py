"""Configuration management for Reservation Caller using Pydantic."""

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twilio Configuration
    twilio_account_sid: str | None = Field(None, description="Twilio account SID")
    twilio_auth_token: str | None = Field(None, description="Twilio auth token")
    twilio_phone_number: str | None = Field(None, description="Twilio phone number")
    twilio_voice: str = Field(default="alice", description="Voice used for <Say>")
    twilio_machine_detection: bool = Field(
        default=False, description="Ask Twilio to report voicemail pickups"
    )

    # Telegram Configuration (human approval channel)
    telegram_bot_token: str | None = Field(None, description="Telegram bot token")
    telegram_chat_id: str | None = Field(
        None, description="Chat that receives approval prompts"
    )
    telegram_webhook_secret: str | None = Field(
        None, description="Expected X-Telegram-Bot-Api-Secret-Token header"
    )

    # Orchestration callback (generic event sink)
    openclaw_callback_url: str | None = Field(
        None, description="URL that receives call lifecycle events"
    )
    openclaw_callback_token: str | None = Field(
        None, description="Bearer token for the callback URL"
    )

    # Server Configuration
    server_host: str = Field(default="0.0.0.0", description="Server host")
    server_port: int = Field(default=8787, description="Server port")
    server_url: str = Field(
        default="http://localhost:8787",
        description="Server URL for CLI to connect to API",
    )
    app_base_url: str = Field(
        default="http://localhost:8787",
        description="Public base URL used to build Twilio webhook URLs",
    )

    # Persistence
    data_file: str = Field(
        default="./data/calls.json",
        description="JSON file mirroring call records (empty for memory only)",
    )

    # Negotiation
    default_time_flex_minutes: int = Field(
        default=30, ge=0, description="Flexibility window when a request sets none"
    )
    max_clarification_attempts: int = Field(
        default=3, gt=0, description="Business replies before clarify escalates"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")

    def has_twilio_config(self) -> bool:
        """Check if Twilio is properly configured."""
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )

    def has_telegram_config(self) -> bool:
        """Check if the Telegram approval channel is configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def model_post_init(self, __context) -> None:
        """Validate configuration after initialization."""
        if not self.has_twilio_config():
            logger.warning("Twilio credentials incomplete - calls will be simulated")

        if not self.has_telegram_config():
            logger.warning(
                "TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set - approval prompts disabled"
            )

        if not self.openclaw_callback_url:
            logger.info("OPENCLAW_CALLBACK_URL not set - lifecycle events not forwarded")


# Global config instance
config: Config | None = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global config
    if config is None:
        config = Config()
    return config


def setup_logging(cfg: Config | None = None) -> None:
    """Configure logging for the application."""
    if cfg is None:
        cfg = get_config()

    log_level = getattr(logging, cfg.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("twilio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
