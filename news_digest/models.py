"""Data models for RSS News Digest Bot."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ErrorKind(str, Enum):
    """Recoverable failure kinds, each handled at its own scope."""

    SOURCE_UNAVAILABLE = "source_unavailable"
    RECORD_STORE_UNAVAILABLE = "record_store_unavailable"
    TRANSLATION_FAILURE = "translation_failure"
    TRANSPORT_FAILURE = "transport_failure"


class DigestStatus(str, Enum):
    """Externally visible result of a digest run."""

    NO_SOURCES = "no_sources"
    NOTHING_TO_DELIVER = "nothing_to_deliver"
    DELIVERED = "delivered"
    PARTIALLY_DELIVERED = "partially_delivered"
    DELIVERY_FAILED = "delivery_failed"


@dataclass(frozen=True)
class FeedItem:
    """Represents a single RSS/Atom feed item."""

    title: str
    link: str
    published: datetime | None
    content: str
    feed_url: str


@dataclass(frozen=True)
class TranslatedItem:
    """A feed item together with the title shown to readers."""

    item: FeedItem
    display_title: str


@dataclass
class MessageChunk:
    """One transport message: an ordered batch of rendered item blocks."""

    blocks: list[str] = field(default_factory=list)
    items: list[TranslatedItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def text(self) -> str:
        return "\n".join(self.blocks)


@dataclass
class SourceResult:
    """Outcome of collecting a single feed source."""

    feed_url: str
    items: list[FeedItem] = field(default_factory=list)
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


@dataclass
class AggregationResult:
    """Merged, filtered and deduplicated items from all sources."""

    items: list[FeedItem]
    source_results: list[SourceResult]
    relevant_count: int = 0
    already_delivered_count: int = 0
    untitled_count: int = 0

    @property
    def failed_sources(self) -> list[SourceResult]:
        return [result for result in self.source_results if not result.ok]


@dataclass
class ChunkDelivery:
    """Transport result for one chunk."""

    index: int
    chunk: MessageChunk
    success: bool
    error_kind: ErrorKind | None = None


@dataclass
class DigestOutcome:
    """Result of one end-to-end digest run."""

    status: DigestStatus
    aggregation: AggregationResult | None = None
    chunks: list[MessageChunk] = field(default_factory=list)
    deliveries: list[ChunkDelivery] = field(default_factory=list)

    @property
    def delivered_items(self) -> list[TranslatedItem]:
        return [
            item
            for delivery in self.deliveries
            if delivery.success
            for item in delivery.chunk.items
        ]
