"""End-to-end digest run: aggregate, plan and deliver."""

from collections.abc import Awaitable, Callable

from .aggregator import FeedAggregator
from .config import DigestConfig
from .logging_config import create_execution_logger
from .models import ChunkDelivery, DigestOutcome, DigestStatus, ErrorKind
from .planner import ChunkedDeliveryPlanner
from .telegram import TelegramPublisher

DIGEST_HEADER = "📰 Latest news:\n"


class DigestPipeline:
    """Wires the aggregator, planner and transport into one run."""

    def __init__(
        self,
        aggregator: FeedAggregator,
        planner: ChunkedDeliveryPlanner,
        translate: Callable[[str], Awaitable[str]],
        publisher: TelegramPublisher,
        config: DigestConfig,
        execution_id: str | None = None,
    ):
        self.aggregator = aggregator
        self.planner = planner
        self.translate = translate
        self.publisher = publisher
        self.config = config
        self.logger = create_execution_logger("pipeline", execution_id)

    async def run(self, feed_urls: list[str], chat_id: str | None = None) -> DigestOutcome:
        """Run one digest for the given sources.

        Returns an outcome whose status separates "nothing to deliver"
        (no sources, no relevant or only already delivered items) from
        delivery failures.
        """
        if not feed_urls:
            self.logger.info("No feed sources configured")
            return DigestOutcome(status=DigestStatus.NO_SOURCES)

        aggregation = await self.aggregator.aggregate(feed_urls)
        if not aggregation.items:
            self.logger.info(
                "Nothing to deliver",
                relevant=aggregation.relevant_count,
                already_delivered=aggregation.already_delivered_count,
            )
            return DigestOutcome(
                status=DigestStatus.NOTHING_TO_DELIVER, aggregation=aggregation
            )

        chunks = await self.planner.plan(
            aggregation.items,
            self.translate,
            chunk_size=self.config.messages_per_chunk,
            max_items=self.config.news_limit,
        )
        if not chunks:
            return DigestOutcome(
                status=DigestStatus.NOTHING_TO_DELIVER, aggregation=aggregation
            )

        texts = [chunk.text for chunk in chunks]
        texts[0] = DIGEST_HEADER + texts[0]
        results = await self.publisher.deliver_chunks(texts, chat_id)

        deliveries = [
            ChunkDelivery(
                index=index,
                chunk=chunk,
                success=success,
                error_kind=None if success else ErrorKind.TRANSPORT_FAILURE,
            )
            for index, (chunk, success) in enumerate(zip(chunks, results))
        ]

        sent = sum(1 for delivery in deliveries if delivery.success)
        if sent == len(deliveries):
            status = DigestStatus.DELIVERED
        elif sent:
            status = DigestStatus.PARTIALLY_DELIVERED
        else:
            status = DigestStatus.DELIVERY_FAILED

        self.logger.info(
            f"Digest finished: {sent}/{len(deliveries)} chunks sent",
            status=status.value,
        )
        return DigestOutcome(
            status=status, aggregation=aggregation, chunks=chunks, deliveries=deliveries
        )
