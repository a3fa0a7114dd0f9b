"""Chunked delivery planning: translate, render and batch items."""

from collections.abc import Awaitable, Callable
from zoneinfo import ZoneInfo

from .dedup import DeliveryRecordGate
from .logging_config import create_execution_logger
from .models import ErrorKind, FeedItem, MessageChunk, TranslatedItem

DATE_FORMAT = "%Y-%m-%d %H:%M"


def escape_html(text: str | None) -> str:
    """Escape HTML characters in text for Telegram HTML parsing."""
    if not text:
        return ""

    text = text.replace("&", "&amp;")
    text = text.replace("<", "&lt;")
    text = text.replace(">", "&gt;")
    text = text.replace('"', "&quot;")
    text = text.replace("'", "&#x27;")

    return text


class ChunkedDeliveryPlanner:
    """Turns an ordered item list into size-bounded message chunks.

    At most ``max_items`` items are accepted per run; later items are left
    untouched. Each accepted item is translated, rendered and recorded as
    delivered. A failure on one item skips just that item.
    """

    def __init__(
        self,
        gate: DeliveryRecordGate,
        timezone: str = "UTC",
        execution_id: str | None = None,
    ):
        self.gate = gate
        self.tz = ZoneInfo(timezone)
        self.logger = create_execution_logger("planner", execution_id)

    def format_item(self, item: TranslatedItem) -> str:
        """Render one item block: bold title, link and optional date line."""
        lines = [f"🔗 <b>{escape_html(item.display_title)}</b>", item.item.link]

        published = item.item.published
        if published is not None:
            if published.tzinfo is not None:
                published = published.astimezone(self.tz)
            lines.append(f"Published on: {published.strftime(DATE_FORMAT)}")

        return "\n".join(lines) + "\n"

    async def plan(
        self,
        items: list[FeedItem],
        translate: Callable[[str], Awaitable[str]],
        chunk_size: int,
        max_items: int,
    ) -> list[MessageChunk]:
        """Build message chunks from items, recording each accepted item.

        Args:
            items: Items in delivery order
            translate: Returns the display title for an item title
            chunk_size: Number of items per chunk
            max_items: Maximum number of items accepted in this run

        Returns:
            Chunks in order; empty when no item was accepted
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be greater than zero, got {chunk_size}")
        if max_items <= 0:
            raise ValueError(f"max_items must be greater than zero, got {max_items}")

        chunks: list[MessageChunk] = []
        buffer = MessageChunk()
        accepted = 0

        for item in items:
            if accepted >= max_items:
                break

            if not item.title:
                self.logger.warning("Skipping news item without title", feed_url=item.feed_url)
                continue

            try:
                display_title = await translate(item.title) or item.title
                translated = TranslatedItem(item=item, display_title=display_title)
                block = self.format_item(translated)
            except Exception as e:
                self.logger.error(
                    f"Error processing news item: {e}",
                    item_title=item.title,
                    error=str(e),
                )
                continue

            buffer.blocks.append(block)
            buffer.items.append(translated)
            accepted += 1

            # A failed write never unwinds the block
            try:
                await self.gate.record_delivered(item.title)
            except Exception as e:
                self.logger.error(
                    f"Unexpected error recording delivery: {e}",
                    item_title=item.title,
                    error_kind=ErrorKind.RECORD_STORE_UNAVAILABLE,
                    error=str(e),
                )

            if len(buffer) == chunk_size:
                chunks.append(buffer)
                buffer = MessageChunk()

        if buffer.blocks:
            chunks.append(buffer)

        self.logger.info(
            f"Planned {len(chunks)} chunks for {accepted} items",
            chunks=len(chunks),
            accepted=accepted,
            skipped=max(len(items) - accepted, 0),
        )
        return chunks
