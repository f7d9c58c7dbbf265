"""
Configuration settings for the PrepWise interview engine.
All settings can be overridden via environment variables.
"""
import os
import logging
from dataclasses import dataclass, field


@dataclass
class LLMConfig:
    """Text-generation server configuration."""
    base_url: str = field(default_factory=lambda: os.getenv("LLM_URL", "http://localhost:9000"))
    completion_endpoint: str = "/completion"
    timeout: int = field(default_factory=lambda: int(os.getenv("LLM_TIMEOUT", "60")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "2")))
    # Seconds before the first retry; doubles on each further attempt
    retry_backoff: float = field(default_factory=lambda: float(os.getenv("LLM_RETRY_BACKOFF", "0.5")))

    # Default generation parameters
    default_temperature: float = 0.7
    default_top_p: float = 0.9
    default_repeat_penalty: float = 1.1

    @property
    def completion_url(self) -> str:
        return f"{self.base_url}{self.completion_endpoint}"


@dataclass
class VoiceConfig:
    """Voice gateway configuration."""
    base_url: str = field(default_factory=lambda: os.getenv("VOICE_API_URL", "http://localhost:9100"))
    api_key: str = field(default_factory=lambda: os.getenv("VOICE_API_KEY", ""))
    timeout: int = field(default_factory=lambda: int(os.getenv("VOICE_TIMEOUT", "15")))
    # Where the gateway should POST call events back to us
    webhook_base_url: str = field(default_factory=lambda: os.getenv("VOICE_WEBHOOK_URL", "http://localhost:8000"))


@dataclass
class FeedbackConfig:
    """Feedback report generation settings."""
    max_tokens: int = 1200
    temperature: float = 0.3
    # Worker threads running report generation off the event path
    worker_threads: int = field(default_factory=lambda: int(os.getenv("FEEDBACK_WORKERS", "4")))


@dataclass
class SessionDefaults:
    """Defaults applied to new sessions."""
    default_english_level: str = "intermediate"
    default_user_name: str = "Candidate"


@dataclass
class LoggingConfig:
    """Logging setup."""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: os.getenv(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))


class Config:
    """Main configuration class combining all config sections."""

    def __init__(self):
        self.llm = LLMConfig()
        self.voice = VoiceConfig()
        self.feedback = FeedbackConfig()
        self.sessions = SessionDefaults()
        self.logging = LoggingConfig()

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        return cls()


def configure_logging(cfg: "Config" = None) -> None:
    """Apply the configured log level and format to the root logger."""
    cfg = cfg or config
    level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=cfg.logging.format)


# Global config instance
config = Config()
