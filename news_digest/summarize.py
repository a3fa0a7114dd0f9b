"""Summarization of user supplied text using Amazon Bedrock."""

import asyncio
import json
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockConfig
from .logging_config import create_execution_logger

SYSTEM_PROMPT = (
    "Translate the headline into Ukrainian (if possible without losing meaning). "
    "Summarize the content concisely in Ukrainian (4-6 sentences), focusing on: "
    "key events and quotes, important numbers and dates, main stakeholders. "
    "Keep organization names in their original form (e.g., NATO). "
    "Add the article link at the end, on a new paragraph, without brackets or "
    "formatting. Do not add section labels such as 'Headline translation:' or "
    "'Summary:'."
)

THINK_END_TAG = "</think>"


class SummarizationError(Exception):
    """Raised when the model cannot produce a summary."""


class Summarizer:
    """Turns free-form user text into a short summary with Bedrock."""

    def __init__(self, config: BedrockConfig, execution_id: str | None = None):
        """Initialize the summarizer with Bedrock configuration."""
        self.config = config
        self.logger = create_execution_logger("summarizer", execution_id)
        self.bedrock_client = boto3.client(
            "bedrock-runtime", region_name=self.config.region
        )
        self.logger.info("Initialized Bedrock client", model_id=config.model_id)

    @property
    def is_llama(self) -> bool:
        return "llama" in self.config.model_id.lower()

    def build_request(self, text: str) -> dict:
        """Build the invoke_model body for the configured model family."""
        if self.is_llama:
            # Llama: legacy prompt format with chat template tags
            prompt = (
                "<|begin_of_text|><|start_header_id|>system<|end_header_id|>\n\n"
                f"{SYSTEM_PROMPT}<|eot_id|><|start_header_id|>user<|end_header_id|>\n\n"
                f"{text}<|eot_id|><|start_header_id|>assistant<|end_header_id|>\n\n"
            )
            return {
                "prompt": prompt,
                "max_gen_len": self.config.max_tokens,
                "temperature": 0.3,
                "top_p": 0.9,
            }

        # Amazon Nova / Mistral: messages with a system block
        return {
            "system": [{"text": SYSTEM_PROMPT}],
            "messages": [{"role": "user", "content": [{"text": text}]}],
            "inferenceConfig": {"maxTokens": self.config.max_tokens, "temperature": 0.3},
        }

    def extract_text(self, response_body: dict) -> str:
        """Pull the generated text out of a model response.

        Raises:
            SummarizationError: If the response has no usable text
        """
        if self.is_llama:
            text = response_body.get("generation")
        else:
            try:
                text = response_body["output"]["message"]["content"][0]["text"]
            except (KeyError, IndexError, TypeError):
                text = None

        if not text or not text.strip():
            raise SummarizationError(
                f"Invalid model response structure: {list(response_body.keys())}"
            )
        return strip_reasoning(text)

    def summarize_text(self, text: str) -> str:
        """Summarize text with the configured model.

        Args:
            text: User supplied text, usually an article or a link with context

        Returns:
            Summary text

        Raises:
            SummarizationError: If the model call fails or returns nothing
        """
        if not text or not text.strip():
            raise SummarizationError("Nothing to summarize")

        start_time = time.time()
        try:
            response = self.bedrock_client.invoke_model(
                modelId=self.config.model_id,
                body=json.dumps(self.build_request(text)),
                contentType="application/json",
                accept="application/json",
            )
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            self.logger.error(f"Bedrock client error: {error_code}", error=str(e))
            raise SummarizationError(f"Bedrock call failed: {error_code}") from e
        except (BotoCoreError, json.JSONDecodeError) as e:
            self.logger.error(f"Unexpected error calling Bedrock: {e}", error=str(e))
            raise SummarizationError("Failed to process request") from e

        summary = self.extract_text(response_body)
        self.logger.info(
            "Generated summary",
            response_time_ms=int((time.time() - start_time) * 1000),
            response_length=len(summary),
        )
        return summary

    async def summarize(self, text: str) -> str:
        return await asyncio.to_thread(self.summarize_text, text)


def strip_reasoning(text: str) -> str:
    """Drop a leading reasoning block terminated by ``</think>``."""
    if THINK_END_TAG in text:
        answer = text.split(THINK_END_TAG, 1)[1].strip()
        if answer:
            return answer
    return text.strip()
