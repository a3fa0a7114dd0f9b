"""Amazon Translate client used as the remote headline transform."""

import asyncio

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import TranslationConfig
from .logging_config import create_execution_logger


class TranslationError(Exception):
    """Raised when the remote translation call fails."""


class AmazonTranslateClient:
    """Translates short texts with Amazon Translate."""

    def __init__(self, config: TranslationConfig, execution_id: str | None = None):
        self.config = config
        self.logger = create_execution_logger("translator", execution_id)
        self.client = boto3.client("translate", region_name=config.region)

        self.logger.info(
            "AmazonTranslateClient initialized",
            target_language=config.target_language,
        )

    def translate_text(self, text: str) -> str:
        """Translate text into the configured target language.

        Args:
            text: Source text, language detected automatically

        Returns:
            Translated text

        Raises:
            TranslationError: If the service call fails or returns no text
        """
        try:
            response = self.client.translate_text(
                Text=text,
                SourceLanguageCode="auto",
                TargetLanguageCode=self.config.target_language,
            )
        except (ClientError, BotoCoreError) as e:
            raise TranslationError(f"Amazon Translate call failed: {e}") from e

        translated = response.get("TranslatedText", "")
        if not translated.strip():
            raise TranslationError("Amazon Translate returned an empty translation")
        return translated

    async def translate(self, text: str) -> str:
        """Async wrapper running the blocking boto3 call in a worker thread."""
        return await asyncio.to_thread(self.translate_text, text)
