"""Unit tests for RSS Feed Processor."""

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests

from news_digest.models import FeedItem
from news_digest.rss import FeedProcessor, FeedSourceError

FEED_URL = "https://news.example.com/rss"

RSS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com</link>
    <description>Example</description>
    <item>
      <title>Ukraine peace talks resume</title>
      <link>https://news.example.com/peace-talks</link>
      <description>&lt;p&gt;Delegations met in &lt;b&gt;Geneva&lt;/b&gt;.&lt;/p&gt;</description>
      <pubDate>Mon, 19 Oct 2026 09:30:00 +0300</pubDate>
    </item>
    <item>
      <title>Undated item</title>
      <link>https://news.example.com/undated</link>
      <description>No date here</description>
    </item>
    <item>
      <link>https://news.example.com/untitled</link>
      <description>Missing title</description>
      <pubDate>Mon, 19 Oct 2026 10:00:00 +0300</pubDate>
    </item>
  </channel>
</rss>
"""

EMPTY_RSS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Empty</title></channel></rss>
"""


def ok_response(content: bytes) -> Mock:
    response = Mock()
    response.content = content
    response.status_code = 200
    response.raise_for_status.return_value = None
    return response


class TestFeedProcessorUnit:
    """Unit tests for FeedProcessor."""

    def setup_method(self):
        self.session_patcher = patch("news_digest.rss.requests.Session")
        self.mock_session_class = self.session_patcher.start()
        self.session = self.mock_session_class.return_value
        self.processor = FeedProcessor(timeout=5)

    def teardown_method(self):
        self.session_patcher.stop()

    def test_parse_feed_normalizes_items_in_order(self):
        self.session.get.return_value = ok_response(RSS_XML)

        items = self.processor.parse_feed(FEED_URL)

        assert [item.title for item in items] == [
            "Ukraine peace talks resume",
            "Undated item",
            "",
        ]
        first = items[0]
        assert isinstance(first, FeedItem)
        assert first.link == "https://news.example.com/peace-talks"
        assert first.content == "Delegations met in Geneva ."
        assert first.feed_url == FEED_URL
        assert first.published == datetime.fromisoformat("2026-10-19T09:30:00+03:00")

    def test_missing_pub_date_is_none(self):
        self.session.get.return_value = ok_response(RSS_XML)

        items = self.processor.parse_feed(FEED_URL)

        assert items[1].published is None

    def test_timeout_is_passed_to_request(self):
        self.session.get.return_value = ok_response(RSS_XML)

        self.processor.parse_feed(FEED_URL, timeout=1.5)

        self.session.get.assert_called_once_with(FEED_URL, timeout=1.5)

    def test_download_error_raises_feed_source_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(FeedSourceError) as exc_info:
            self.processor.parse_feed(FEED_URL)

        assert exc_info.value.feed_url == FEED_URL

    def test_http_error_raises_feed_source_error(self):
        response = ok_response(b"")
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        self.session.get.return_value = response

        with pytest.raises(FeedSourceError):
            self.processor.parse_feed(FEED_URL)

    @pytest.mark.parametrize("url", ["ftp://example.com/rss", "not a url", ""])
    def test_invalid_url_raises_feed_source_error(self, url):
        with pytest.raises(FeedSourceError):
            self.processor.parse_feed(url)
        self.session.get.assert_not_called()

    def test_validate_feed_accepts_feed_with_items(self):
        self.session.get.return_value = ok_response(RSS_XML)
        assert asyncio.run(self.processor.validate_feed(FEED_URL, timeout=2))

    def test_validate_feed_rejects_empty_feed(self):
        self.session.get.return_value = ok_response(EMPTY_RSS_XML)
        assert not asyncio.run(self.processor.validate_feed(FEED_URL, timeout=2))

    def test_validate_feed_rejects_unreachable_url(self):
        self.session.get.side_effect = requests.Timeout("timed out")
        assert not asyncio.run(self.processor.validate_feed(FEED_URL, timeout=2))

    def test_clean_html_content(self):
        html = "<p>Hello <b>world</b></p><script>alert('x')</script><style>p{}</style>"
        assert self.processor.clean_html_content(html) == "Hello world"
        assert self.processor.clean_html_content("  plain\n\ttext  ") == "plain text"
        assert self.processor.clean_html_content("") == ""

    @pytest.mark.parametrize("url", ["http://[::1/rss", "http://::1]/rss"])
    def test_malformed_url_raises_feed_source_error(self, url):
        with pytest.raises(FeedSourceError) as exc_info:
            self.processor.parse_feed(url)

        assert exc_info.value.feed_url == url
        self.session.get.assert_not_called()

    def test_validate_feed_rejects_malformed_url(self):
        assert asyncio.run(self.processor.validate_feed("http://[::1/rss", timeout=2)) is False

    def test_validate_feed_never_raises(self):
        self.session.get.side_effect = RuntimeError("unexpected failure")
        assert asyncio.run(self.processor.validate_feed(FEED_URL, timeout=2)) is False

    def test_each_thread_gets_its_own_session(self):
        main_session = self.processor.session

        async def worker_session():
            return await asyncio.to_thread(lambda: self.processor.session)

        asyncio.run(worker_session())

        assert self.processor.session is main_session
        assert self.mock_session_class.call_count == 2

    def test_zone_abbreviation_is_resolved_to_utc(self):
        """EDT is understood by feedparser, so the item lands on the right day."""
        xml = RSS_XML.replace(
            b"Mon, 19 Oct 2026 09:30:00 +0300", b"Mon, 19 Oct 2026 23:30:00 EDT"
        )
        self.session.get.return_value = ok_response(xml)

        items = self.processor.parse_feed(FEED_URL)

        assert items[0].published == datetime(2026, 10, 20, 3, 30, tzinfo=UTC)
        assert items[0].published.tzinfo is not None

    def test_parsed_time_takes_precedence_over_text(self):
        entry = SimpleNamespace(
            title="Headline",
            link="https://news.example.com/a",
            summary="",
            published="Mon, 19 Oct 2026 23:30:00 XYZ",
            published_parsed=(2026, 10, 20, 3, 30, 0, 1, 293, 0),
        )

        item = self.processor.normalize_item(entry, FEED_URL)

        assert item.published == datetime(2026, 10, 20, 3, 30, tzinfo=UTC)

    def test_text_date_used_without_parsed_time(self):
        entry = SimpleNamespace(
            title="Headline",
            link="https://news.example.com/a",
            summary="",
            updated="2026-10-19T10:00:00+02:00",
        )

        item = self.processor.normalize_item(entry, FEED_URL)

        assert item.published == datetime.fromisoformat("2026-10-19T10:00:00+02:00")
