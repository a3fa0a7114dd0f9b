"""Configuration management for RSS News Digest Bot."""

import os
from dataclasses import dataclass, field


@dataclass
class TelegramConfig:
    """Configuration for Telegram Bot API."""

    bot_token: str
    chat_id: str
    parse_mode: str = "HTML"
    retry_attempts: int = 3
    backoff_factor: float = 2.0
    message_delay: float = 0.1


@dataclass
class BedrockConfig:
    """Configuration for Amazon Bedrock."""

    model_id: str = "amazon.nova-micro-v1:0"
    region: str = "us-east-1"
    max_tokens: int = 1000


@dataclass
class TranslationConfig:
    """Configuration for headline translation."""

    enabled: bool = False
    max_requests_per_second: int = 2
    timeout: float = 10.0
    target_language: str = "uk"
    region: str = "us-east-1"


@dataclass
class DigestConfig:
    """Configuration for feed aggregation and chunked delivery."""

    news_limit: int = 40
    messages_per_chunk: int = 8
    rss_timeout: int = 5000  # milliseconds
    keywords: list[str] = field(default_factory=list)
    timezone: str = "Europe/Kyiv"

    @property
    def rss_timeout_seconds(self) -> float:
        return self.rss_timeout / 1000


def _env_int(name: str, default: int) -> int:
    """Read a positive integer from the environment."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero, got {value}")
    return value


def parse_keywords(raw: str) -> list[str]:
    """Split a comma-separated keyword list, dropping blank entries."""
    return [keyword.strip() for keyword in raw.split(",") if keyword.strip()]


class Config:
    """Main configuration manager."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.telegram_secret_name = os.getenv(
            "TELEGRAM_SECRET_NAME", "rss-news-digest-bot-token"
        )
        self.chat_id = os.getenv("TELEGRAM_CHAT_ID", "")
        self.delivery_table = os.getenv("DELIVERY_TABLE", "rss-news-digest-delivered")
        self.sources_table = os.getenv("SOURCES_TABLE", "rss-news-digest-sources")
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.bedrock_model_id = os.getenv("BEDROCK_MODEL_ID", "amazon.nova-micro-v1:0")

        self.translation_enabled = os.getenv("TRANSLATION_ENABLED") == "true"
        self.max_requests_per_second = _env_int("MAX_REQUESTS_PER_SECOND", 2)
        self.translation_timeout = _env_int("TRANSLATION_TIMEOUT", 10)
        self.target_language = os.getenv("TARGET_LANGUAGE", "uk")

        self.news_limit = _env_int("NEWS_LIMIT", 40)
        self.messages_per_chunk = _env_int("MESSAGES_PER_CHUNK", 8)
        self.rss_timeout = _env_int("RSS_TIMEOUT", 5000)
        self.keywords = parse_keywords(os.getenv("NEWS_KEYWORDS", ""))
        self.timezone = os.getenv("NEWS_TIMEZONE", "Europe/Kyiv")

    def get_telegram_config(self) -> TelegramConfig:
        """Get Telegram configuration."""
        # Token will be retrieved from Secrets Manager at runtime
        return TelegramConfig(bot_token="", chat_id=self.chat_id)

    def get_bedrock_config(self) -> BedrockConfig:
        return BedrockConfig(model_id=self.bedrock_model_id, region=self.aws_region)

    def get_translation_config(self) -> TranslationConfig:
        return TranslationConfig(
            enabled=self.translation_enabled,
            max_requests_per_second=self.max_requests_per_second,
            timeout=float(self.translation_timeout),
            target_language=self.target_language,
            region=self.aws_region,
        )

    def get_digest_config(self) -> DigestConfig:
        return DigestConfig(
            news_limit=self.news_limit,
            messages_per_chunk=self.messages_per_chunk,
            rss_timeout=self.rss_timeout,
            keywords=list(self.keywords),
            timezone=self.timezone,
        )
