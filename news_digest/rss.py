"""RSS Feed Processing module for RSS News Digest Bot."""

import asyncio
import threading
from datetime import UTC, datetime
from urllib.parse import urlparse

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .logging_config import create_execution_logger
from .models import FeedItem


class FeedSourceError(Exception):
    """Raised when a feed cannot be downloaded or parsed."""

    def __init__(self, feed_url: str, message: str):
        super().__init__(f"{feed_url}: {message}")
        self.feed_url = feed_url


class FeedProcessor:
    """Handles RSS/Atom feed download, parsing and normalization."""

    def __init__(self, timeout: float = 5.0, execution_id: str | None = None):
        """Initialize FeedProcessor with configuration.

        Args:
            timeout: HTTP request timeout in seconds
            execution_id: Execution ID for logging context
        """
        self.timeout = timeout
        self.logger = create_execution_logger("feed_processor", execution_id)
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        """HTTP session of the calling thread.

        Feeds are parsed concurrently in worker threads and a Session must
        not be shared between them, so each thread gets its own.
        """
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(
                {"User-Agent": "RSS-News-Digest-Bot/1.0 (RSS to Telegram digest)"}
            )
            self._local.session = session
        return session

        self.logger.info("FeedProcessor initialized", timeout=timeout)

    def parse_feed(self, feed_url: str, timeout: float | None = None) -> list[FeedItem]:
        """Download and parse a single RSS/Atom feed.

        Args:
            feed_url: URL of the RSS/Atom feed
            timeout: Optional override of the request timeout in seconds

        Returns:
            List of FeedItem objects in feed order

        Raises:
            FeedSourceError: If the URL is invalid, the download fails or
                the content is not a feed
        """
        try:
            parsed_url = urlparse(feed_url)
        except ValueError as e:
            raise FeedSourceError(feed_url, f"invalid URL: {e}") from e
        if parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
            raise FeedSourceError(feed_url, "feed URL must be an http(s) URL")

        try:
            response = self.session.get(
                feed_url, timeout=timeout if timeout is not None else self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FeedSourceError(feed_url, f"download failed: {e}") from e

        self.logger.debug(
            "Feed downloaded successfully",
            feed_url=feed_url,
            status_code=response.status_code,
            content_length=len(response.content),
        )

        feed = feedparser.parse(response.content)

        if feed.bozo and not feed.entries:
            raise FeedSourceError(
                feed_url, f"not a valid feed: {getattr(feed, 'bozo_exception', '')}"
            )
        if feed.bozo:
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {feed.bozo_exception}",
                feed_url=feed_url,
            )

        items = [self.normalize_item(entry, feed_url) for entry in feed.entries]
        if not items:
            self.logger.info("No items found in feed", feed_url=feed_url)

        self.logger.log_feed_processing(feed_url, len(items))
        return items

    async def fetch_feed(self, feed_url: str, timeout: float | None = None) -> list[FeedItem]:
        """Async wrapper running ``parse_feed`` in a worker thread."""
        return await asyncio.to_thread(self.parse_feed, feed_url, timeout)

    async def validate_feed(self, feed_url: str, timeout: float | None = None) -> bool:
        """Check that a URL is a reachable feed with at least one item.

        Used when a new source is registered. Never raises: any failure
        means the URL is not a usable feed.
        """
        try:
            items = await self.fetch_feed(feed_url, timeout)
        except FeedSourceError as e:
            self.logger.warning(f"Invalid feed URL: {e}", feed_url=feed_url)
            return False
        except Exception as e:
            self.logger.warning(
                f"Unexpected error validating feed: {e}", feed_url=feed_url, error=str(e)
            )
            return False
        return len(items) > 0

    def normalize_item(self, raw_item, feed_url: str) -> FeedItem:
        """Normalize a raw feed entry into a FeedItem.

        Missing titles become empty strings and missing or unparseable
        publication dates become None; callers decide what to drop.

        Args:
            raw_item: Raw feed entry from feedparser
            feed_url: Source feed URL

        Returns:
            Normalized FeedItem object
        """
        title = (getattr(raw_item, "title", "") or "").strip()
        link = getattr(raw_item, "link", "") or ""

        published = self.parsed_time(raw_item) or self.parse_published(
            getattr(raw_item, "published", None) or getattr(raw_item, "updated", None)
        )

        # Prefer full content, then summary, as the text searched for keywords
        content = ""
        raw_content = getattr(raw_item, "content", None)
        if isinstance(raw_content, list) and raw_content:
            content = raw_content[0].get("value", "")
        elif isinstance(raw_content, str):
            content = raw_content
        if not content:
            content = getattr(raw_item, "summary", "") or getattr(
                raw_item, "description", ""
            ) or ""

        return FeedItem(
            title=title,
            link=link,
            published=published,
            content=self.clean_html_content(content),
            feed_url=feed_url,
        )

    def parsed_time(self, raw_item) -> datetime | None:
        """Return feedparser's own UTC timestamp for the entry, if any.

        feedparser resolves zone abbreviations such as ``EDT`` that dateutil
        leaves naive, so its ``*_parsed`` fields take precedence.
        """
        for key in ("published_parsed", "updated_parsed"):
            value = getattr(raw_item, key, None)
            if not value:
                continue
            try:
                return datetime(*value[:6], tzinfo=UTC)
            except (TypeError, ValueError):
                continue
        return None

    def parse_published(self, published_str: str | None) -> datetime | None:
        if not published_str or not isinstance(published_str, str):
            return None
        try:
            return date_parser.parse(published_str)
        except (ValueError, TypeError, OverflowError):
            self.logger.debug(f"Unparseable publication date: {published_str}")
            return None

    def clean_html_content(self, content: str) -> str:
        """Remove HTML tags from content and normalize whitespace.

        Args:
            content: Raw content that may contain HTML

        Returns:
            Clean text content without HTML tags
        """
        if not content:
            return ""

        if "<" in content or ">" in content:
            soup = BeautifulSoup(content, "html.parser")
            for script in soup(["script", "style"]):
                script.decompose()
            content = soup.get_text(separator=" ")
            content = content.replace("<", "").replace(">", "")

        return " ".join(content.split())
