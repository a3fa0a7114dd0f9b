"""Rate-limited translation queue for RSS News Digest Bot."""

import asyncio
import itertools
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from .logging_config import create_execution_logger
from .models import ErrorKind

TranslateTransform = Callable[[str], Awaitable[str | None]]


class QueueState(str, Enum):
    """Lifecycle of the drain loop."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass
class QueueJob:
    """A pending translation request, owned by the queue until resolved."""

    sequence: int
    text: str
    result: asyncio.Future


class RateLimitedQueue:
    """Single-consumer FIFO that throttles calls to a translation transform.

    Any number of coroutines may call ``enqueue``; exactly one drain task
    executes the transform, one job at a time, in submission order. Between
    the completion of one call and the start of the next at least
    ``1 / max_requests_per_second`` seconds of wall-clock time elapse.

    Each job's future resolves exactly once: with the translated text, or
    with ``None`` (the fallback signal) when the transform fails, times out
    or returns nothing. Transform errors never escape the queue.
    """

    def __init__(
        self,
        transform: TranslateTransform,
        max_requests_per_second: int,
        job_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        execution_id: str | None = None,
    ):
        """Initialize the queue.

        Args:
            transform: Async callable performing one remote translation
            max_requests_per_second: Upper bound on call rate, must be > 0
            job_timeout: Seconds after which a stuck call resolves with the fallback
            clock: Monotonic clock used to measure call spacing
            execution_id: Execution ID for logging context
        """
        if max_requests_per_second <= 0:
            raise ValueError(
                f"max_requests_per_second must be greater than zero, "
                f"got {max_requests_per_second}"
            )

        self.transform = transform
        self.max_requests_per_second = max_requests_per_second
        self.interval = 1.0 / max_requests_per_second
        self.job_timeout = job_timeout
        self.clock = clock
        self.logger = create_execution_logger("translate_queue", execution_id)

        self._jobs: deque[QueueJob] = deque()
        self._sequence = itertools.count()
        self._state = QueueState.IDLE
        self._drain_task: asyncio.Task | None = None
        self._last_call_end: float | None = None

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._jobs)

    def enqueue(self, text: str) -> asyncio.Future:
        """Append a job and return the future that will hold its result.

        Never blocks and never rejects. Starts the drain loop when idle.
        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        job = QueueJob(sequence=next(self._sequence), text=text, result=loop.create_future())
        self._jobs.append(job)

        if self._state is QueueState.IDLE:
            self._state = QueueState.RUNNING
            self._drain_task = loop.create_task(self._drain())
            self.logger.debug("Drain loop started", queued=len(self._jobs))

        return job.result

    async def _drain(self) -> None:
        """Process jobs until the FIFO is observed empty, then go idle."""
        job: QueueJob | None = None
        try:
            while self._jobs:
                job = self._jobs.popleft()
                await self._wait_for_slot()
                self._resolve(job, await self._run_job(job))
                job = None
        except asyncio.CancelledError:
            # Nothing may be left waiting on a cancelled loop
            if job is not None:
                self._resolve(job, None)
            while self._jobs:
                self._resolve(self._jobs.popleft(), None)
            raise
        finally:
            self._state = QueueState.IDLE
            self._drain_task = None
            self.logger.debug("Drain loop finished")

    async def _wait_for_slot(self) -> None:
        if self._last_call_end is None:
            return
        remaining = self.interval - (self.clock() - self._last_call_end)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _run_job(self, job: QueueJob) -> str | None:
        try:
            translated = await asyncio.wait_for(
                self.transform(job.text), timeout=self.job_timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Translation timed out after {self.job_timeout}s",
                item_title=job.text,
                error_kind=ErrorKind.TRANSLATION_FAILURE,
            )
            return None
        except Exception as e:
            self.logger.error(
                f"Translation failed: {e}",
                item_title=job.text,
                error_kind=ErrorKind.TRANSLATION_FAILURE,
                error=str(e),
            )
            return None
        finally:
            self._last_call_end = self.clock()

        if not translated:
            self.logger.warning(
                "Translation returned an empty result",
                item_title=job.text,
                error_kind=ErrorKind.TRANSLATION_FAILURE,
            )
            return None

        self.logger.debug("Translation successful", item_title=job.text)
        return translated

    @staticmethod
    def _resolve(job: QueueJob, value: str | None) -> None:
        # The caller may have cancelled its future already
        if not job.result.done():
            job.result.set_result(value)


class TitleTranslator:
    """Headline translation entry point used by the delivery planner.

    With translation disabled this is the identity function and never
    touches the queue. Otherwise every title goes through the queue and
    falls back to the original text on the fallback signal.
    """

    def __init__(
        self,
        queue: RateLimitedQueue | None,
        enabled: bool = True,
        execution_id: str | None = None,
    ):
        if enabled and queue is None:
            raise ValueError("A queue is required when translation is enabled")
        self.queue = queue
        self.enabled = enabled
        self.logger = create_execution_logger("title_translator", execution_id)

    async def __call__(self, title: str) -> str:
        if not self.enabled:
            return title

        translated = await self.queue.enqueue(title)
        if translated is None:
            self.logger.info("Using original title", item_title=title)
            return title
        return translated
