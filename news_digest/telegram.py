"""Telegram Publisher for RSS News Digest Bot."""

import asyncio
import json
import time
import urllib.error
import urllib.request
from typing import Any

from .config import TelegramConfig
from .logging_config import create_execution_logger
from .models import ErrorKind


class TelegramPublisher:
    """Transport boundary: sends rendered text to a Telegram chat."""

    def __init__(self, config: TelegramConfig, execution_id: str | None = None):
        """Initialize Telegram publisher with configuration."""
        self.config = config
        self.logger = create_execution_logger("telegram_publisher", execution_id)
        self.base_url = f"https://api.telegram.org/bot{config.bot_token}"

        self.logger.info(
            "TelegramPublisher initialized",
            chat_id=config.chat_id,
            parse_mode=config.parse_mode,
            retry_attempts=config.retry_attempts,
        )

    def send_text(
        self,
        text: str,
        chat_id: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> bool:
        """
        Send one message to Telegram.

        Args:
            text: Fully rendered message text
            chat_id: Target chat, defaults to the configured chat
            reply_markup: Optional keyboard markup

        Returns:
            True if message was sent successfully, False otherwise
        """
        data = {
            "chat_id": chat_id or self.config.chat_id,
            "text": text,
            "parse_mode": self.config.parse_mode,
            "disable_web_page_preview": True,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup

        return self._send_telegram_message(data)

    async def deliver_chunks(
        self, texts: list[str], chat_id: str | None = None
    ) -> list[bool]:
        """
        Send chunks one at a time, in order, pausing between messages.

        A failed chunk is logged and reported; the remaining chunks are
        still sent.

        Args:
            texts: Rendered chunk texts in delivery order
            chat_id: Target chat, defaults to the configured chat

        Returns:
            One success flag per chunk, in the same order
        """
        results = []
        for index, text in enumerate(texts):
            if index and self.config.message_delay > 0:
                await asyncio.sleep(self.config.message_delay)

            success = await asyncio.to_thread(self.send_text, text, chat_id)
            if not success:
                self.logger.error(
                    f"Failed to deliver chunk {index + 1} of {len(texts)}",
                    chat_id=chat_id or self.config.chat_id,
                    error_kind=ErrorKind.TRANSPORT_FAILURE,
                )
            results.append(success)
        return results

    def handle_rate_limit(self, retry_count: int) -> None:
        """
        Handle rate limiting with exponential backoff.

        Args:
            retry_count: Current retry attempt number
        """
        backoff_time = self.config.backoff_factor**retry_count
        self.logger.warning(
            f"Rate limited, waiting {backoff_time} seconds before retry {retry_count + 1}",
            retry_count=retry_count,
        )
        time.sleep(backoff_time)

    def _send_telegram_message(self, data: dict[str, Any]) -> bool:
        """
        Send message to Telegram API with retry logic.

        Only rate limiting (HTTP 429) is retried; other errors fail fast.

        Args:
            data: sendMessage payload

        Returns:
            True if successful, False otherwise
        """
        url = f"{self.base_url}/sendMessage"
        json_data = json.dumps(data).encode("utf-8")

        for attempt in range(self.config.retry_attempts):
            try:
                self.logger.debug(
                    f"Sending message to Telegram API (attempt {attempt + 1})",
                    message_length=len(data["text"]),
                )

                req = urllib.request.Request(
                    url,
                    data=json_data,
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": "RSS-News-Digest-Bot/1.0",
                    },
                )

                with urllib.request.urlopen(req, timeout=30) as response:
                    if response.status == 200:
                        self.logger.info("Message sent successfully to Telegram")
                        return True
                    self.logger.error(
                        f"Telegram API returned status {response.status}"
                    )
                    return False

            except urllib.error.HTTPError as e:
                if e.code == 429:
                    if attempt < self.config.retry_attempts - 1:
                        self.handle_rate_limit(attempt)
                        continue
                    self.logger.error("Max retry attempts reached for rate limiting")
                    return False
                self.logger.error(f"HTTP error sending message: {e.code} - {e.reason}")
                return False

            except urllib.error.URLError as e:
                self.logger.error(f"URL error sending message: {e.reason}")
                return False

            except Exception as e:
                self.logger.error(f"Unexpected error sending message: {e}", error=str(e))
                return False

        return False
