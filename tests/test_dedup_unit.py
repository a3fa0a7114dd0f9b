"""Unit tests for the delivery record gate."""

import asyncio
import threading
from unittest.mock import Mock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

from news_digest.dedup import DeliveryRecordGate


def client_error(code: str = "ProvisionedThroughputExceededException") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, "GetItem")


class TestDeliveryRecordGateUnit:
    """Unit tests for DeliveryRecordGate."""

    def setup_method(self):
        self.client_patcher = patch("boto3.client")
        mock_boto_client = self.client_patcher.start()
        self.mock_client = Mock()
        mock_boto_client.return_value = self.mock_client
        self.gate = DeliveryRecordGate("test-table", "us-east-1")
        mock_boto_client.assert_called_once_with("dynamodb", region_name="us-east-1")

    def teardown_method(self):
        self.client_patcher.stop()

    def test_lookup_finds_delivered_title(self):
        self.mock_client.get_item.return_value = {
            "Item": {"title": {"S": "Ukraine peace talks resume"}}
        }

        assert asyncio.run(self.gate.already_delivered("Ukraine peace talks resume"))
        self.mock_client.get_item.assert_called_once_with(
            TableName="test-table",
            Key={"title": {"S": "Ukraine peace talks resume"}},
            ConsistentRead=True,
        )

    def test_lookup_missing_title(self):
        self.mock_client.get_item.return_value = {}
        assert not asyncio.run(self.gate.already_delivered("Fresh headline"))

    def test_lookup_uses_exact_title(self):
        """Titles are not normalized: casing and whitespace are significant."""
        self.mock_client.get_item.return_value = {}
        asyncio.run(self.gate.already_delivered("  Mixed Case Title "))

        key = self.mock_client.get_item.call_args.kwargs["Key"]
        assert key == {"title": {"S": "  Mixed Case Title "}}

    def test_lookup_fails_open_on_client_error(self):
        self.mock_client.get_item.side_effect = client_error()
        assert asyncio.run(self.gate.already_delivered("Any title")) is False

    def test_lookup_fails_open_when_store_unreachable(self):
        self.mock_client.get_item.side_effect = EndpointConnectionError(
            endpoint_url="https://dynamodb.us-east-1.amazonaws.com"
        )
        assert asyncio.run(self.gate.already_delivered("Any title")) is False

    def test_concurrent_lookups_share_only_the_client(self):
        """Batched lookups from worker threads all go through the low-level client."""
        threads = set()

        def get_item(**kwargs):
            threads.add(threading.get_ident())
            return {}

        self.mock_client.get_item.side_effect = get_item
        titles = [f"Headline {i}" for i in range(10)]

        async def lookup_all():
            return await asyncio.gather(
                *(self.gate.already_delivered(title) for title in titles)
            )

        assert asyncio.run(lookup_all()) == [False] * 10
        assert self.mock_client.get_item.call_count == 10
        assert threading.get_ident() not in threads
        assert not hasattr(self.gate, "table")

    def test_record_writes_title(self):
        assert asyncio.run(self.gate.record_delivered("Delivered headline")) is True

        call_kwargs = self.mock_client.put_item.call_args.kwargs
        assert call_kwargs["TableName"] == "test-table"
        item = call_kwargs["Item"]
        assert item["title"] == {"S": "Delivered headline"}
        assert "S" in item["delivered_at"]
        assert "ttl" not in item

    def test_record_failure_is_reported_not_raised(self):
        self.mock_client.put_item.side_effect = client_error("InternalServerError")
        assert asyncio.run(self.gate.record_delivered("Delivered headline")) is False
