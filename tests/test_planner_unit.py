"""Unit tests for the chunked delivery planner."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import Mock, patch
from zoneinfo import ZoneInfo

import pytest
from botocore.exceptions import ClientError

from news_digest.dedup import DeliveryRecordGate
from news_digest.models import FeedItem, TranslatedItem
from news_digest.planner import ChunkedDeliveryPlanner, escape_html
from news_digest.translate_queue import RateLimitedQueue, TitleTranslator

KYIV = ZoneInfo("Europe/Kyiv")


def make_item(title: str, published=None) -> FeedItem:
    return FeedItem(
        title=title,
        link=f"https://news.example.com/{title.lower().replace(' ', '-')}",
        published=published,
        content="",
        feed_url="https://news.example.com/rss",
    )


class RecordingGate:
    def __init__(self, fail: bool = False):
        self.recorded: list[str] = []
        self.fail = fail

    async def record_delivered(self, title):
        if self.fail:
            return False
        self.recorded.append(title)
        return True


class RecordingTranslate:
    def __init__(self, fail_on=()):
        self.calls: list[str] = []
        self.fail_on = set(fail_on)

    async def __call__(self, title):
        self.calls.append(title)
        if title in self.fail_on:
            raise RuntimeError("translator crashed")
        return f"T:{title}"


class TestChunkedDeliveryPlannerUnit:
    """Unit tests for ChunkedDeliveryPlanner."""

    def setup_method(self):
        self.gate = RecordingGate()
        self.planner = ChunkedDeliveryPlanner(self.gate, timezone="Europe/Kyiv")

    def test_news_limit_caps_processing(self):
        """
        With a limit of 5 and 7 eligible items, exactly 5 are translated,
        planned and recorded; items 6 and 7 are untouched.
        """
        items = [make_item(f"Item {i}") for i in range(1, 8)]
        translate = RecordingTranslate()

        chunks = asyncio.run(self.planner.plan(items, translate, chunk_size=8, max_items=5))

        expected = [f"Item {i}" for i in range(1, 6)]
        assert translate.calls == expected
        assert self.gate.recorded == expected
        assert [t.item.title for chunk in chunks for t in chunk.items] == expected

    def test_chunks_are_sealed_at_chunk_size(self):
        items = [make_item(f"Item {i}") for i in range(7)]

        chunks = asyncio.run(
            self.planner.plan(items, RecordingTranslate(), chunk_size=3, max_items=40)
        )

        assert [len(chunk) for chunk in chunks] == [3, 3, 1]

    def test_no_items_yields_no_chunks(self):
        chunks = asyncio.run(
            self.planner.plan([], RecordingTranslate(), chunk_size=3, max_items=40)
        )
        assert chunks == []
        assert self.gate.recorded == []

    def test_item_error_skips_only_that_item(self):
        items = [make_item("Good one"), make_item("Bad one"), make_item("Good two")]
        translate = RecordingTranslate(fail_on={"Bad one"})

        chunks = asyncio.run(self.planner.plan(items, translate, chunk_size=8, max_items=40))

        assert [t.item.title for t in chunks[0].items] == ["Good one", "Good two"]
        assert self.gate.recorded == ["Good one", "Good two"]

    def test_skipped_item_does_not_count_towards_limit(self):
        items = [make_item("Bad"), make_item("A"), make_item("B"), make_item("C")]
        translate = RecordingTranslate(fail_on={"Bad"})

        chunks = asyncio.run(self.planner.plan(items, translate, chunk_size=8, max_items=2))

        assert [t.item.title for t in chunks[0].items] == ["A", "B"]
        assert "C" not in translate.calls

    def test_record_failure_keeps_item_in_chunk(self):
        planner = ChunkedDeliveryPlanner(RecordingGate(fail=True), timezone="Europe/Kyiv")

        chunks = asyncio.run(
            planner.plan([make_item("Headline")], RecordingTranslate(), chunk_size=8, max_items=40)
        )

        assert [t.item.title for t in chunks[0].items] == ["Headline"]

    def test_record_store_down_keeps_item_in_chunk(self):
        with patch("boto3.client") as mock_boto_client:
            mock_dynamodb = Mock()
            mock_dynamodb.put_item.side_effect = ClientError(
                {"Error": {"Code": "InternalServerError", "Message": "down"}}, "PutItem"
            )
            mock_boto_client.return_value = mock_dynamodb
            planner = ChunkedDeliveryPlanner(DeliveryRecordGate("delivered"))

        chunks = asyncio.run(
            planner.plan([make_item("Headline")], RecordingTranslate(), chunk_size=8, max_items=40)
        )

        assert len(chunks) == 1
        mock_dynamodb.put_item.assert_called_once()

    def test_translation_failure_falls_back_to_title(self):
        async def always_fails(text):
            raise ConnectionError("translation service unreachable")

        items = [make_item(f"Headline {i}") for i in range(4)]

        async def scenario():
            translator = TitleTranslator(RateLimitedQueue(always_fails, 500))
            return await self.planner.plan(items, translator, chunk_size=3, max_items=40)

        chunks = asyncio.run(scenario())

        translated = [t for chunk in chunks for t in chunk.items]
        assert [t.display_title for t in translated] == [item.title for item in items]

    def test_format_item_with_date(self):
        item = TranslatedItem(
            item=make_item(
                "Peace talks", published=datetime(2026, 10, 19, 6, 30, tzinfo=timezone.utc)
            ),
            display_title="Мирні переговори",
        )

        block = self.planner.format_item(item)

        assert block == (
            "🔗 <b>Мирні переговори</b>\n"
            "https://news.example.com/peace-talks\n"
            "Published on: 2026-10-19 09:30\n"
        )

    def test_format_item_without_date_omits_line(self):
        item = TranslatedItem(item=make_item("Peace talks"), display_title="Peace talks")

        block = self.planner.format_item(item)

        assert "Published on" not in block
        assert block.count("\n") == 2

    def test_format_item_escapes_title(self):
        item = TranslatedItem(item=make_item("x"), display_title="Q&A <live>")
        assert "<b>Q&amp;A &lt;live&gt;</b>" in self.planner.format_item(item)

    def test_chunk_text_joins_blocks(self):
        items = [make_item("One"), make_item("Two")]

        chunks = asyncio.run(
            self.planner.plan(items, RecordingTranslate(), chunk_size=8, max_items=40)
        )

        assert chunks[0].text.count("🔗") == 2
        assert chunks[0].text.index("T:One") < chunks[0].text.index("T:Two")

    @pytest.mark.parametrize("chunk_size,max_items", [(0, 5), (5, 0), (-1, 5)])
    def test_rejects_non_positive_sizes(self, chunk_size, max_items):
        with pytest.raises(ValueError):
            asyncio.run(
                self.planner.plan(
                    [make_item("x")], RecordingTranslate(), chunk_size, max_items
                )
            )

    def test_escape_html(self):
        assert escape_html("") == ""
        assert escape_html(None) == ""
        assert escape_html("&<>\"'") == "&amp;&lt;&gt;&quot;&#x27;"
