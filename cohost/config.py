"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from cohost.config import settings
    print(settings.twitch.channel)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from cohost.errors import ConfigError

# Load environment variables from .env file
# This should be called before accessing any environment variables
load_dotenv()


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ConfigError when not set

    Returns:
        The environment variable value or default

    Raises:
        ConfigError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


@dataclass
class SpeechConfig:
    """
    Azure Speech recognition configuration.

    Attributes:
        api_key: Azure Speech subscription key
        region: Azure Speech region
        language: The single language the recognizer is restricted to
        eou_pause_ms: Pause between words that ends an utterance
    """
    api_key: str = field(default_factory=lambda: get_env("AZURE_SPEECH_API_KEY"))
    region: str = field(default_factory=lambda: get_env("AZURE_SPEECH_REGION"))
    language: str = field(default_factory=lambda: get_env("STREAM_LANGUAGE", "ru-RU"))
    eou_pause_ms: int = field(default_factory=lambda: get_env_int("SPEECH_EOU_PAUSE_MS", 500))

    @property
    def is_configured(self) -> bool:
        """Check whether credentials are present."""
        return bool(self.api_key and self.region)

    def validate(self) -> bool:
        """Validate that required speech settings are configured."""
        if not self.api_key:
            raise ConfigError("AZURE_SPEECH_API_KEY is required")
        if not self.region:
            raise ConfigError("AZURE_SPEECH_REGION is required")
        return True


@dataclass
class ModelConfig:
    """
    Settings for one OpenAI-compatible chat completion endpoint.

    Attributes:
        base_url: API base URL, e.g. https://openrouter.ai/api/v1
        api_key: Bearer token
        model: Model identifier
        temperature: Sampling temperature
        max_tokens: Maximum completion tokens
    """
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = 0.2
    max_tokens: int = 1000

    @classmethod
    def from_env(cls, prefix: str, temperature: float, max_tokens: int) -> "ModelConfig":
        """Build a model config from ``{prefix}_*`` environment variables."""
        return cls(
            base_url=get_env(f"{prefix}_BASE_URL", "https://api.openai.com/v1"),
            api_key=get_env(f"{prefix}_API_KEY"),
            model=get_env(f"{prefix}_MODEL", "gpt-4o-mini"),
            temperature=get_env_float(f"{prefix}_TEMPERATURE", temperature),
            max_tokens=get_env_int(f"{prefix}_MAX_TOKENS", max_tokens),
        )

    @property
    def chat_url(self) -> str:
        """Get the full URL for chat completion API calls."""
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def validate(self, name: str) -> bool:
        """Validate that the endpoint is usable."""
        if not self.api_key:
            raise ConfigError(f"{name}_API_KEY is required")
        if not self.model:
            raise ConfigError(f"{name}_MODEL is required")
        return True


@dataclass
class TwitchConfig:
    """
    Chat boundary configuration.

    Attributes:
        channel: Channel the co-host sits in (also the streamer's username)
        username: Bot account username
        oauth_token: Chat token of the bot account (without ``oauth:``)
        disable_notifications: Log replies instead of sending them
        ignore_chat: Do not listen to chat, react to the streamer only
    """
    channel: str = field(default_factory=lambda: get_env("TWITCH_CHANNEL"))
    username: str = field(default_factory=lambda: get_env("TWITCH_USERNAME"))
    oauth_token: str = field(default_factory=lambda: get_env("TWITCH_OAUTH_TOKEN"))
    irc_url: str = field(default_factory=lambda: get_env("TWITCH_IRC_URL", "wss://irc-ws.chat.twitch.tv:443"))
    disable_notifications: bool = field(default_factory=lambda: get_env_bool("TWITCH_DISABLE_NOTIFICATIONS", False))
    ignore_chat: bool = field(default_factory=lambda: get_env_bool("TWITCH_IGNORE_CHAT", False))

    def validate(self) -> bool:
        """Validate chat settings."""
        if not self.channel:
            raise ConfigError("TWITCH_CHANNEL is required")
        if not self.username:
            raise ConfigError("TWITCH_USERNAME is required")
        if not self.oauth_token and not (self.disable_notifications and self.ignore_chat):
            raise ConfigError("TWITCH_OAUTH_TOKEN is required")
        return True


@dataclass
class ConversationConfig:
    """
    Decision/reply pipeline configuration.

    Attributes:
        reply_cooldown_s: Minimum seconds between two sent replies
        llm_timeout_s: Deadline of a single LLM call
        max_message_length: Longest reply allowed in chat
        history_size: Number of chat records kept for prompts
    """
    reply_cooldown_s: float = field(default_factory=lambda: get_env_float("REPLY_COOLDOWN_SECONDS", 30.0))
    llm_timeout_s: float = field(default_factory=lambda: get_env_float("LLM_TIMEOUT_SECONDS", 30.0))
    max_message_length: int = field(default_factory=lambda: get_env_int("MAX_MESSAGE_LENGTH", 500))
    history_size: int = field(default_factory=lambda: get_env_int("HISTORY_SIZE", 20))

    def validate(self) -> bool:
        """Validate conversation settings."""
        if self.reply_cooldown_s < 0:
            raise ConfigError("REPLY_COOLDOWN_SECONDS cannot be negative")
        if self.llm_timeout_s <= 0:
            raise ConfigError("LLM_TIMEOUT_SECONDS must be positive")
        if self.max_message_length <= 0:
            raise ConfigError("MAX_MESSAGE_LENGTH must be positive")
        if self.history_size <= 0:
            raise ConfigError("HISTORY_SIZE must be positive")
        return True


@dataclass
class StorageConfig:
    """
    Durable storage configuration.

    Attributes:
        facts_file: JSON file holding the fact list
    """
    facts_file: str = field(default_factory=lambda: get_env("FACTS_FILE", "data/facts.json"))

    @property
    def facts_path(self) -> Path:
        """Get the fact file as a Path object."""
        return Path(self.facts_file)


@dataclass
class EngineConfig:
    """
    Run supervisor configuration.

    Attributes:
        stream_url: HLS/media URL of the live broadcast
        restart_backoff_s: Pause before restarting a terminated run
        ffmpeg_path: ffmpeg executable
    """
    stream_url: str = field(default_factory=lambda: get_env("STREAM_URL"))
    restart_backoff_s: float = field(default_factory=lambda: get_env_float("RESTART_BACKOFF_SECONDS", 5.0))
    ffmpeg_path: str = field(default_factory=lambda: get_env("FFMPEG_PATH", "ffmpeg"))


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Access via the singleton `settings` instance.

    Example:
        from cohost.config import settings

        settings.validate_all()
        cooldown = settings.conversation.reply_cooldown_s
    """
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    decision: ModelConfig = field(default_factory=lambda: ModelConfig.from_env("DECISION", 0.2, 1000))
    reply: ModelConfig = field(default_factory=lambda: ModelConfig.from_env("REPLY", 1.0, 500))
    twitch: TwitchConfig = field(default_factory=TwitchConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all validations pass

        Raises:
            ConfigError: If any validation fails
        """
        self.speech.validate()
        self.decision.validate("DECISION")
        self.reply.validate("REPLY")
        self.twitch.validate()
        self.conversation.validate()
        return True


# Singleton settings instance
# Import this in other modules: from cohost.config import settings
settings = Settings()
