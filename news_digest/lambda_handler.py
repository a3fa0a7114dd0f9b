"""Main Lambda handler for RSS News Digest Bot."""

import asyncio
import json
import os
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .aggregator import FeedAggregator
from .config import Config
from .dedup import DeliveryRecordGate
from .logging_config import create_execution_logger, setup_structured_logging
from .models import DigestOutcome, DigestStatus
from .pipeline import DigestPipeline
from .planner import ChunkedDeliveryPlanner
from .rss import FeedProcessor
from .sources import SourceRegistry, SourceRegistryError
from .summarize import SummarizationError, Summarizer
from .telegram import TelegramPublisher
from .translate import AmazonTranslateClient
from .translate_queue import RateLimitedQueue, TitleTranslator

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

METRICS_NAMESPACE = "RSS-News-Digest-Bot"

WELCOME_MESSAGE = "Welcome! I will send you the latest news from your sources!"
SEARCHING_MESSAGE = "🔍 Searching for news... Please wait a moment."
NO_SOURCES_MESSAGE = "No sources found. Add one using /addsource"
NOTHING_NEW_MESSAGE = "No new news available at the moment."
DIGEST_FAILED_MESSAGE = "❌ Failed to retrieve news. Please try again later."
ADD_SOURCE_USAGE = (
    "Please provide an RSS URL. Example: /addsource https://example.com/rss"
)
SUMMARIZE_USAGE = "Send /ai followed by the text you want summarized."
SUMMARIZING_MESSAGE = "🤖 Summarizing your text..."
SUMMARIZE_FAILED_MESSAGE = "❌ An error occurred while processing your request."

KEYBOARD = {
    "keyboard": [[{"text": "Subscribe"}], [{"text": "Add source"}], [{"text": "Summarize"}]],
    "resize_keyboard": True,
}


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Main Lambda handler.

    A scheduled invocation (no ``body``) runs the digest for the configured
    chat. An API Gateway invocation carries a Telegram webhook update in
    ``body`` and is dispatched to the matching command.

    Args:
        event: Lambda event data
        context: Lambda context object

    Returns:
        Response dictionary with status and metrics
    """
    execution_id = f"lambda_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)
    main_logger.log_execution_start(
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
    )

    metrics = new_metrics()
    config = None

    try:
        config = Config()

        telegram_config = config.get_telegram_config()
        telegram_token = get_telegram_token(
            config.telegram_secret_name, config.aws_region, execution_id
        )
        if not telegram_token or not telegram_token.strip():
            raise ValueError("Telegram bot configuration cannot be empty")
        telegram_config.bot_token = telegram_token
        publisher = TelegramPublisher(telegram_config, execution_id=execution_id)

        if event.get("body"):
            return handle_webhook(event["body"], config, publisher, execution_id)

        outcome = asyncio.run(
            run_digest(config, publisher, config.chat_id, execution_id)
        )
        metrics = collect_metrics(outcome)
        main_logger.log_metrics(metrics)
        send_cloudwatch_metrics(metrics, config.aws_region, execution_id)
        main_logger.log_execution_end(success=True, metrics=metrics)

        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "RSS News Digest Bot execution completed",
                    "execution_id": execution_id,
                    "status": outcome.status.value,
                    "metrics": metrics,
                }
            ),
        }

    except Exception as e:
        error_msg = f"Critical error in Lambda handler: {str(e)}"
        main_logger.error(error_msg, error=str(e))
        metrics["errors"].append(error_msg)

        send_cloudwatch_metrics(
            metrics, config.aws_region if config else "us-east-1", execution_id
        )
        main_logger.log_execution_end(success=False, metrics=metrics)

        if event.get("body"):
            # Telegram redelivers any update that does not get a 200
            return {"statusCode": 200, "body": json.dumps({"ok": False})}

        return {
            "statusCode": 500,
            "body": json.dumps(
                {
                    "message": "RSS News Digest Bot execution failed",
                    "execution_id": execution_id,
                    "error": error_msg,
                    "metrics": metrics,
                }
            ),
        }


def build_pipeline(
    config: Config, publisher: TelegramPublisher, execution_id: str
) -> DigestPipeline:
    """Assemble the digest pipeline from configuration."""
    digest_config = config.get_digest_config()
    translation_config = config.get_translation_config()

    gate = DeliveryRecordGate(
        table_name=config.delivery_table,
        aws_region=config.aws_region,
        execution_id=execution_id,
    )
    aggregator = FeedAggregator(
        FeedProcessor(timeout=digest_config.rss_timeout_seconds, execution_id=execution_id),
        gate,
        keywords=digest_config.keywords,
        timeout=digest_config.rss_timeout_seconds,
        timezone=digest_config.timezone,
        execution_id=execution_id,
    )
    planner = ChunkedDeliveryPlanner(
        gate, timezone=digest_config.timezone, execution_id=execution_id
    )

    queue = None
    if translation_config.enabled:
        client = AmazonTranslateClient(translation_config, execution_id=execution_id)
        queue = RateLimitedQueue(
            client.translate,
            translation_config.max_requests_per_second,
            job_timeout=translation_config.timeout,
            execution_id=execution_id,
        )
    translator = TitleTranslator(
        queue, enabled=translation_config.enabled, execution_id=execution_id
    )

    return DigestPipeline(
        aggregator,
        planner,
        translator,
        publisher,
        digest_config,
        execution_id=execution_id,
    )


async def run_digest(
    config: Config, publisher: TelegramPublisher, chat_id: str, execution_id: str
) -> DigestOutcome:
    """Load sources and run one digest for a chat.

    Raises:
        SourceRegistryError: If the source table cannot be read
    """
    registry = SourceRegistry(
        config.sources_table, config.aws_region, execution_id=execution_id
    )
    feed_urls = await asyncio.to_thread(registry.list_urls)
    pipeline = build_pipeline(config, publisher, execution_id)
    return await pipeline.run(feed_urls, chat_id)


def handle_webhook(
    body: str,
    config: Config,
    publisher: TelegramPublisher,
    execution_id: str,
) -> dict[str, Any]:
    """Process one webhook update; always answers 200 so it is not redelivered."""
    main_logger = create_execution_logger("main", execution_id)

    try:
        handle_update(json.loads(body), config, publisher, execution_id)
    except Exception as e:
        main_logger.error(f"Error handling Telegram update: {e}", error=str(e))
        main_logger.log_execution_end(success=False)
        return {"statusCode": 200, "body": json.dumps({"ok": False})}

    main_logger.log_execution_end(success=True)
    return {"statusCode": 200, "body": json.dumps({"ok": True})}


def parse_command(text: str) -> tuple[str, str]:
    """Split a message into a lowercase command and its argument text.

    ``/addsource@MyBot https://x`` -> (``/addsource``, ``https://x``).
    Plain keyboard texts are returned unchanged as the command.
    """
    text = text.strip()
    if not text.startswith("/"):
        return text, ""
    parts = text.split(maxsplit=1)
    command = parts[0].split("@", 1)[0].lower()
    return command, parts[1].strip() if len(parts) > 1 else ""


def handle_update(
    update: dict[str, Any],
    config: Config,
    publisher: TelegramPublisher,
    execution_id: str,
) -> None:
    """Dispatch a Telegram webhook update to its command."""
    command_logger = create_execution_logger("commands", execution_id)

    message = update.get("message") or {}
    text = message.get("text") or ""
    chat = message.get("chat") or {}
    if not text or "id" not in chat:
        command_logger.debug("Ignoring update without text message")
        return

    chat_id = str(chat["id"])
    command, argument = parse_command(text)
    command_logger.info(f"Received command {command}", chat_id=chat_id)

    if command == "/start":
        publisher.send_text(WELCOME_MESSAGE, chat_id, reply_markup=KEYBOARD)
    elif command in ("/subscribe", "Subscribe"):
        handle_subscribe(config, publisher, chat_id, execution_id)
    elif command == "/addsource":
        handle_add_source(argument, config, publisher, chat_id, execution_id)
    elif command == "Add source":
        publisher.send_text(ADD_SOURCE_USAGE, chat_id)
    elif command == "/ai":
        handle_summarize(argument, config, publisher, chat_id, execution_id)
    elif command == "Summarize":
        publisher.send_text(SUMMARIZE_USAGE, chat_id)


def handle_subscribe(
    config: Config, publisher: TelegramPublisher, chat_id: str, execution_id: str
) -> None:
    """Run the digest for the requesting chat and report the outcome."""
    command_logger = create_execution_logger("commands", execution_id)
    publisher.send_text(SEARCHING_MESSAGE, chat_id)

    try:
        outcome = asyncio.run(run_digest(config, publisher, chat_id, execution_id))
    except SourceRegistryError as e:
        command_logger.error(f"Error in /subscribe command: {e}", chat_id=chat_id)
        publisher.send_text(DIGEST_FAILED_MESSAGE, chat_id)
        return

    if outcome.aggregation:
        for source in outcome.aggregation.failed_sources:
            publisher.send_text(f"❌ Failed to get news from {source.feed_url}.", chat_id)

    if outcome.status is DigestStatus.NO_SOURCES:
        publisher.send_text(NO_SOURCES_MESSAGE, chat_id)
    elif outcome.status is DigestStatus.NOTHING_TO_DELIVER:
        publisher.send_text(NOTHING_NEW_MESSAGE, chat_id)
    elif outcome.status is DigestStatus.DELIVERY_FAILED:
        publisher.send_text(DIGEST_FAILED_MESSAGE, chat_id)


def handle_add_source(
    url: str,
    config: Config,
    publisher: TelegramPublisher,
    chat_id: str,
    execution_id: str,
) -> None:
    """Validate a feed URL and register it as a source."""
    command_logger = create_execution_logger("commands", execution_id)

    if not url:
        publisher.send_text(ADD_SOURCE_USAGE, chat_id)
        return

    digest_config = config.get_digest_config()
    processor = FeedProcessor(
        timeout=digest_config.rss_timeout_seconds, execution_id=execution_id
    )
    if not asyncio.run(processor.validate_feed(url, digest_config.rss_timeout_seconds)):
        publisher.send_text("❌ This is not a valid RSS feed. Please try again.", chat_id)
        return

    try:
        registry = SourceRegistry(
            config.sources_table, config.aws_region, execution_id=execution_id
        )
        added = registry.add_url(url)
    except SourceRegistryError as e:
        command_logger.error(f"Error adding RSS source: {e}", feed_url=url)
        publisher.send_text("❌ Failed to add source.", chat_id)
        return

    if added:
        publisher.send_text(f"✅ Source added: {url}", chat_id)
    else:
        publisher.send_text(f"ℹ️ Source already registered: {url}", chat_id)


def handle_summarize(
    text: str,
    config: Config,
    publisher: TelegramPublisher,
    chat_id: str,
    execution_id: str,
) -> None:
    """Reply with a summary of the supplied text."""
    command_logger = create_execution_logger("commands", execution_id)

    if not text:
        publisher.send_text(SUMMARIZE_USAGE, chat_id)
        return

    publisher.send_text(SUMMARIZING_MESSAGE, chat_id)
    try:
        summary = Summarizer(config.get_bedrock_config(), execution_id).summarize_text(text)
    except SummarizationError as e:
        command_logger.error(f"Text processing error: {e}", chat_id=chat_id)
        publisher.send_text(SUMMARIZE_FAILED_MESSAGE, chat_id)
        return

    publisher.send_text(summary, chat_id)


def new_metrics() -> dict[str, Any]:
    return {
        "feeds_processed": 0,
        "feeds_failed": 0,
        "items_relevant": 0,
        "items_already_delivered": 0,
        "items_delivered": 0,
        "chunks_sent": 0,
        "chunks_failed": 0,
        "errors": [],
    }


def collect_metrics(outcome: DigestOutcome) -> dict[str, Any]:
    """Summarize a digest outcome as metric counters."""
    metrics = new_metrics()
    aggregation = outcome.aggregation
    if aggregation:
        failed = aggregation.failed_sources
        metrics["feeds_processed"] = len(aggregation.source_results) - len(failed)
        metrics["feeds_failed"] = len(failed)
        metrics["items_relevant"] = aggregation.relevant_count
        metrics["items_already_delivered"] = aggregation.already_delivered_count
        metrics["errors"].extend(
            f"Failed to process feed {source.feed_url}: {source.error}"
            for source in failed
        )

    metrics["items_delivered"] = len(outcome.delivered_items)
    for delivery in outcome.deliveries:
        if delivery.success:
            metrics["chunks_sent"] += 1
        else:
            metrics["chunks_failed"] += 1
            metrics["errors"].append(f"Failed to deliver chunk {delivery.index + 1}")
    return metrics


def get_telegram_token(secret_name: str, aws_region: str, execution_id: str) -> str:
    """
    Retrieve the Telegram bot token from AWS Secrets Manager.

    Supports both plain string and JSON secret formats. The token value is
    never logged.

    Args:
        secret_name: Name of the secret in Secrets Manager
        aws_region: AWS region for Secrets Manager client
        execution_id: Execution ID for logging context

    Returns:
        Telegram bot token

    Raises:
        RuntimeError: If the secret cannot be retrieved or has no usable value
        ValueError: If the secret name or region is empty
    """
    secrets_logger = create_execution_logger("secrets_manager", execution_id)

    if not secret_name or not secret_name.strip():
        raise ValueError("Secret name cannot be empty")
    if not aws_region or not aws_region.strip():
        raise ValueError("AWS region cannot be empty")

    try:
        secrets_logger.info(f"Retrieving Telegram token from Secrets Manager: {secret_name}")
        secrets_client = boto3.client("secretsmanager", region_name=aws_region)
        response = secrets_client.get_secret_value(SecretId=secret_name)

        secret_value = (response.get("SecretString") or "").strip()
        if not secret_value:
            raise ValueError(f"Secret {secret_name} contains empty value")

        try:
            secret_data = json.loads(secret_value)
        except json.JSONDecodeError:
            return secret_value

        if not isinstance(secret_data, dict):
            raise ValueError(f"JSON secret {secret_name} must be an object")

        for key in ["token", "bot_token", "telegram_token", "telegram_bot_token"]:
            value = secret_data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

        raise ValueError(f"No valid token found in JSON secret {secret_name}")

    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        secrets_logger.error(
            f"AWS Secrets Manager error retrieving {secret_name}: {error_code}"
        )
        raise RuntimeError(f"Failed to retrieve secret {secret_name}") from e
    except ValueError as e:
        secrets_logger.error(f"Invalid secret format for {secret_name}: {e}")
        raise RuntimeError(f"Invalid secret format for {secret_name}") from e


def send_cloudwatch_metrics(
    metrics: dict[str, Any], aws_region: str, execution_id: str
) -> None:
    """
    Send custom metrics to CloudWatch.

    Failures are logged and never raised.

    Args:
        metrics: Dictionary containing execution metrics
        aws_region: AWS region for CloudWatch client
        execution_id: Execution ID for logging context
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)

        total_errors = len(metrics["errors"])
        execution_success = total_errors == 0
        counters = {
            "FeedsProcessed": metrics["feeds_processed"],
            "FeedsFailed": metrics["feeds_failed"],
            "ItemsRelevant": metrics["items_relevant"],
            "ItemsAlreadyDelivered": metrics["items_already_delivered"],
            "ItemsDelivered": metrics["items_delivered"],
            "ChunksSent": metrics["chunks_sent"],
            "ChunksFailed": metrics["chunks_failed"],
            "Errors": total_errors,
        }

        metric_data = [
            {
                "MetricName": name,
                "Value": value,
                "Unit": "Count",
                "Dimensions": [{"Name": "ExecutionId", "Value": execution_id}],
            }
            for name, value in counters.items()
        ]
        status_dimension = [
            {"Name": "Status", "Value": "Success" if execution_success else "Failure"}
        ]
        metric_data.append(
            {
                "MetricName": "ExecutionSuccess",
                "Value": 1 if execution_success else 0,
                "Unit": "Count",
                "Dimensions": status_dimension,
            }
        )
        metric_data.append(
            {
                "MetricName": "ExecutionFailure",
                "Value": 0 if execution_success else 1,
                "Unit": "Count",
                "Dimensions": status_dimension,
            }
        )

        # CloudWatch accepts at most 20 metrics per call
        batch_size = 20
        for i in range(0, len(metric_data), batch_size):
            batch = metric_data[i : i + batch_size]
            cloudwatch.put_metric_data(Namespace=METRICS_NAMESPACE, MetricData=batch)

        metrics_logger.info(
            "Successfully sent metrics to CloudWatch", metrics_sent=len(metric_data)
        )

    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
