"""Feed aggregation: fetch, filter and deduplicate items across sources."""

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime
from zoneinfo import ZoneInfo

from .dedup import DeliveryRecordGate
from .logging_config import create_execution_logger
from .models import AggregationResult, ErrorKind, FeedItem, SourceResult
from .relevance import compile_keywords, is_item_relevant
from .rss import FeedProcessor, FeedSourceError


class FeedAggregator:
    """Merges many independent feeds into one ordered list of new items.

    Sources are fetched concurrently. A source that fails contributes no
    items and never affects the others. Relevant items from all sources are
    checked against the delivery gate in one concurrent batch. The result
    keeps source order, then feed order within each source.
    """

    def __init__(
        self,
        feed_processor: FeedProcessor,
        gate: DeliveryRecordGate,
        keywords: Iterable[str],
        timeout: float,
        timezone: str = "UTC",
        clock: Callable[[], datetime] | None = None,
        execution_id: str | None = None,
    ):
        """Initialize the aggregator.

        Args:
            feed_processor: Fetches and parses a single feed
            gate: Delivery record gate used to drop already sent items
            keywords: Keyword patterns an item must match
            timeout: Per-feed fetch timeout in seconds
            timezone: Reference time zone for the same-day check
            clock: Returns the current time; defaults to now in ``timezone``
            execution_id: Execution ID for logging context
        """
        self.feed_processor = feed_processor
        self.gate = gate
        self.keywords = compile_keywords(keywords)
        self.timeout = timeout
        self.tz = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.logger = create_execution_logger("aggregator", execution_id)

    async def collect_source(self, feed_url: str) -> SourceResult:
        """Fetch one source, converting any failure into a SourceResult."""
        try:
            items = await asyncio.wait_for(
                self.feed_processor.fetch_feed(feed_url, self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return self._source_failed(feed_url, f"timed out after {self.timeout}s")
        except FeedSourceError as e:
            return self._source_failed(feed_url, str(e))
        except Exception as e:
            return self._source_failed(feed_url, f"unexpected {type(e).__name__}: {e}")
        return SourceResult(feed_url=feed_url, items=items)

    def _source_failed(self, feed_url: str, error: str) -> SourceResult:
        self.logger.error(
            f"Failed to get news from {feed_url}: {error}",
            feed_url=feed_url,
            error_kind=ErrorKind.SOURCE_UNAVAILABLE,
            error=error,
        )
        return SourceResult(
            feed_url=feed_url, error_kind=ErrorKind.SOURCE_UNAVAILABLE, error=error
        )

    async def aggregate(self, feed_urls: list[str]) -> AggregationResult:
        """Collect relevant, not yet delivered items from all feeds."""
        self.logger.log_execution_start(feed_count=len(feed_urls))
        now = self.clock()

        source_results = await asyncio.gather(
            *(self.collect_source(feed_url) for feed_url in feed_urls)
        )

        relevant: list[FeedItem] = []
        untitled = 0
        for source in source_results:
            for item in source.items:
                if not item.title:
                    untitled += 1
                    self.logger.warning(
                        "Skipping news item without title", feed_url=source.feed_url
                    )
                    continue
                if is_item_relevant(item, self.keywords, now):
                    relevant.append(item)

        delivered_flags = await asyncio.gather(
            *(self.gate.already_delivered(item.title) for item in relevant)
        )

        items = [
            item for item, delivered in zip(relevant, delivered_flags) if not delivered
        ]
        for item, delivered in zip(relevant, delivered_flags):
            if delivered:
                self.logger.log_item_processing(item.title, "skipped_already_delivered")

        result = AggregationResult(
            items=items,
            source_results=list(source_results),
            relevant_count=len(relevant),
            already_delivered_count=len(relevant) - len(items),
            untitled_count=untitled,
        )
        self.logger.log_execution_end(
            success=True,
            total_items=len(items),
            failed_sources=len(result.failed_sources),
        )
        return result
