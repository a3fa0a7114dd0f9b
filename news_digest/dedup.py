"""Delivery record gate for RSS News Digest Bot."""

import asyncio
from datetime import UTC, datetime

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .logging_config import create_execution_logger
from .models import ErrorKind


class DeliveryRecordGate:
    """Answers "was this title already delivered?" using DynamoDB.

    Records are keyed by the exact title text as received (case-sensitive,
    no normalization). The table is append-only from this side: records
    are never updated or deleted.

    Lookups fail open: if the store cannot be read the title is treated as
    not delivered, accepting a possible duplicate over losing an item.
    Writes never raise: a failed write is logged and reported as ``False``.
    """

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
    ):
        """Initialize the gate with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB table holding delivered titles
            aws_region: AWS region for DynamoDB client
            execution_id: Execution ID for logging context
        """
        self.table_name = table_name
        self.aws_region = aws_region
        self.logger = create_execution_logger("delivery_gate", execution_id)
        # Lookups run concurrently in worker threads; clients are thread-safe,
        # Table resources are not
        self.client = boto3.client("dynamodb", region_name=aws_region)

        self.logger.info(
            "DeliveryRecordGate initialized", table_name=table_name, aws_region=aws_region
        )

    def is_delivered(self, title: str) -> bool:
        """Blocking lookup of a title. Errors propagate to the caller."""
        response = self.client.get_item(
            TableName=self.table_name,
            Key={"title": {"S": title}},
            ConsistentRead=True,
        )
        return "Item" in response

    def store_delivered(self, title: str) -> None:
        """Blocking write of a delivery record. Errors propagate to the caller."""
        self.client.put_item(
            TableName=self.table_name,
            Item={
                "title": {"S": title},
                "delivered_at": {"S": datetime.now(UTC).isoformat()},
            },
        )

    async def already_delivered(self, title: str) -> bool:
        """Check whether a title was delivered before, failing open.

        Args:
            title: Exact item title

        Returns:
            True if a record exists, False if not or if the store is unreachable
        """
        try:
            delivered = await asyncio.to_thread(self.is_delivered, title)
        except (ClientError, BotoCoreError) as e:
            self.logger.error(
                f"Error checking delivery record, assuming not delivered: {e}",
                item_title=title,
                error_kind=ErrorKind.RECORD_STORE_UNAVAILABLE,
                error=str(e),
            )
            return False

        self.logger.debug(
            f"Checked delivery record (delivered={delivered})", item_title=title
        )
        return delivered

    async def record_delivered(self, title: str) -> bool:
        """Append a delivery record for a title.

        Returns:
            True if the record was written, False if the write failed
        """
        try:
            await asyncio.to_thread(self.store_delivered, title)
        except (ClientError, BotoCoreError) as e:
            self.logger.error(
                f"Error storing delivery record: {e}",
                item_title=title,
                error_kind=ErrorKind.RECORD_STORE_UNAVAILABLE,
                error=str(e),
            )
            return False

        self.logger.info("Stored delivery record", item_title=title)
        return True
