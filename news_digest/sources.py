"""Persistent registry of feed source URLs."""

from datetime import UTC, datetime

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from .logging_config import create_execution_logger


class SourceRegistryError(Exception):
    """Raised when the source table cannot be read or written."""


class SourceRegistry:
    """Stores feed URLs in a DynamoDB table keyed by ``url``."""

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        self.table_name = table_name
        self.logger = create_execution_logger("source_registry", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

    def list_urls(self) -> list[str]:
        """Return all registered feed URLs, oldest registration first.

        Raises:
            SourceRegistryError: If the table cannot be scanned
        """
        records = []
        scan_kwargs = {}
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                records.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Error listing feed sources: {e}", error=str(e))
            raise SourceRegistryError(f"Failed to list feed sources: {e}") from e

        records.sort(key=lambda record: (record.get("added_at", ""), record["url"]))
        urls = [record["url"] for record in records if record.get("url")]
        self.logger.info(f"Loaded {len(urls)} feed sources")
        return urls

    def add_url(self, url: str) -> bool:
        """Register a feed URL.

        Returns:
            True if the URL was added, False if it was already registered

        Raises:
            SourceRegistryError: If the table cannot be written
        """
        try:
            self.table.put_item(
                Item={"url": url, "added_at": datetime.now(UTC).isoformat()},
                ConditionExpression=Attr("url").not_exists(),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                self.logger.info("Feed source already registered", feed_url=url)
                return False
            self.logger.error(f"Error adding feed source: {e}", feed_url=url, error=str(e))
            raise SourceRegistryError(f"Failed to add feed source {url}") from e
        except BotoCoreError as e:
            self.logger.error(f"Error adding feed source: {e}", feed_url=url, error=str(e))
            raise SourceRegistryError(f"Failed to add feed source {url}") from e

        self.logger.info("Added feed source", feed_url=url)
        return True
