"""
Range pipeline that leases id ranges from the tracker, keeps a small window
of them crawling at once and drains finished ones in lease order.
"""

import asyncio
import time
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from ..errors import TrackerError
from ..storage.range_store import RangeStore, compress_payload, render_range
from ..tracker.client import TrackerClient
from ..utils.config import Config
from ..utils.monitoring import CrawlerMonitor
from .fetcher import FetchEngine, FetchOutcome, HttpError, Ok, Redirected
from .range_crawler import RANGE_SIZE, RangeCrawler, RetryPolicy
from .request_queue import FetchTask


@dataclass
class CrawlStats:
    """Statistics for pipeline operations."""
    start_time: float
    ranges_leased: int = 0
    ranges_submitted: int = 0
    profiles_crawled: int = 0
    edges_found: int = 0
    lease_waits: int = 0
    repeated_leases: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time


class RangePipeline:
    """
    Keeps the fetch engine busy with at most ``pipeline.depth`` ranges.

    Each iteration drains the oldest range once the window is full, waits
    while the engine is above the backpressure threshold, and then leases
    one more range. Setting ``shutdown`` stops leasing; ranges already in
    the window are still crawled to the end and submitted.
    """

    def __init__(self, config: Config, engine: FetchEngine, tracker: TrackerClient,
                 store: RangeStore, shutdown: asyncio.Event,
                 monitor: Optional[CrawlerMonitor] = None, range_size: int = RANGE_SIZE):
        self.config = config
        self.engine = engine
        self.tracker = tracker
        self.store = store
        self.shutdown = shutdown
        self.monitor = monitor
        self.range_size = range_size
        self.logger = logging.getLogger(__name__)

        self.depth = config.pipeline.depth
        self.poll_interval = config.pipeline.poll_interval
        self.backpressure_threshold = config.backpressure_threshold
        self.retry_policy = RetryPolicy(config.retry.max_attempts)

        # Oldest lease first
        self.window: Deque[RangeCrawler] = deque()
        self._active: Dict[int, RangeCrawler] = {}
        self.stats = CrawlStats(start_time=time.time())

        self.engine.on_complete = self.route_completion

    def route_completion(self, task: FetchTask, outcome: FetchOutcome):
        """Hand a fetch outcome to the crawler that owns the profile."""
        range_id = task.profile_id // self.range_size * self.range_size
        crawler = self._active.get(range_id)
        if crawler is None:
            raise KeyError(f"No active range owns profile {task.profile_id}")

        if self.monitor:
            self.monitor.record_fetch(self._outcome_kind(outcome))
        crawler.on_completion(task, outcome)

    @staticmethod
    def _outcome_kind(outcome: FetchOutcome) -> str:
        if isinstance(outcome, Ok):
            return 'ok'
        if isinstance(outcome, Redirected):
            return 'redirected'
        if isinstance(outcome, HttpError):
            return 'http_error'
        return 'transport_error'

    async def run(self) -> CrawlStats:
        """
        Lease, crawl and submit ranges until shutdown is signaled.

        Returns:
            Final pipeline statistics

        Raises:
            TrackerSubmissionError: a finished range could not be submitted
            RangeIncompleteError: a range was drained without every result
        """
        self.stats = CrawlStats(start_time=time.time())
        self.logger.info(
            f"Pipeline started (depth {self.depth}, "
            f"backpressure at {self.backpressure_threshold:g} outstanding requests)"
        )

        while not self.shutdown.is_set():
            while len(self.window) >= self.depth:
                await self._drain_oldest()

            await self._wait_for_backpressure()

            if self.shutdown.is_set():
                break

            range_id = await self._lease()
            if range_id is None:
                continue

            if range_id in self._active:
                # completions are routed by range id, so one crawler per range
                self.stats.repeated_leases += 1
                self.logger.warning(f"Range {range_id} is already being crawled, ignoring repeated lease")
                await self._sleep_unless_shutdown(self.config.pipeline.lease_retry_delay)
                continue

            self._start_range(range_id)

        self.logger.info(f"Shutdown requested, finishing {len(self.window)} active ranges")
        while self.window:
            await self._drain_oldest()

        self._log_final_stats()
        return self.stats

    def _start_range(self, range_id: int):
        crawler = RangeCrawler(
            range_id, self.engine,
            retry_policy=self.retry_policy,
            range_size=self.range_size
        )
        self._active[range_id] = crawler
        self.window.append(crawler)
        self.stats.ranges_leased += 1
        self.logger.info(f"Starting download of {crawler}")

        crawler.seed()
        self._update_gauges()

    async def _lease(self) -> Optional[int]:
        self.logger.info("Requesting an id range")
        try:
            range_id = await self.tracker.request_lease()
        except TrackerError as e:
            self.logger.warning(f"{e}; retrying")
            range_id = None

        if range_id is None:
            self.stats.lease_waits += 1
            self.logger.info("Waiting for id range...")
            await self._sleep_unless_shutdown(self.config.pipeline.lease_retry_delay)
        return range_id

    async def _sleep_unless_shutdown(self, delay: float):
        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _wait_for_backpressure(self):
        while (not self.shutdown.is_set()
               and self.engine.outstanding_count() >= self.backpressure_threshold):
            self.engine.raise_for_failure()
            self.log_status()
            await asyncio.sleep(self.poll_interval)

    async def _drain_oldest(self):
        crawler = self.window[0]
        while not crawler.is_done():
            self.engine.raise_for_failure()
            self.log_status()
            await asyncio.sleep(self.poll_interval)
        self.engine.raise_for_failure()

        self.window.popleft()
        del self._active[crawler.range_id]
        self._update_gauges()
        await self.drain(crawler)

    async def drain(self, crawler: RangeCrawler):
        """Finalize, store, compress and submit one finished range."""
        result = crawler.finalize()
        text = render_range(result)
        file_path = self.store.store(result, text)
        payload = compress_payload(text)

        self.logger.info(
            f"{crawler}: {result.elapsed_time:.0f} seconds || Found {result.edge_count} friends! "
            f"Saved to {file_path}"
        )
        self.logger.info(
            f"{crawler}: Submitting results... ({len(payload) // 1024} kB / "
            f"{len(text) // 1024} kB uncompressed)"
        )
        await self.tracker.submit(result.range_id, payload)

        self.stats.ranges_submitted += 1
        self.stats.profiles_crawled += len(result.profiles)
        self.stats.edges_found += result.edge_count
        if self.monitor:
            self.monitor.record_range_submitted(result.edge_count)

    def log_status(self):
        """One progress line: run state plus open/done counts per range."""
        state = "Exiting" if self.shutdown.is_set() else "Running"
        ranges = " | ".join(
            f"{crawler}: {crawler.open_count():6d} open, {crawler.done_count():6d} done"
            for crawler in self.window
        )
        self.logger.info(
            f"{state} || {ranges} || outstanding {self.engine.outstanding_count()}, "
            f"queued {self.engine.queued_count()}"
        )
        self._update_gauges()

    def _update_gauges(self):
        if self.monitor:
            self.monitor.update_engine(self.engine.outstanding_count(), self.engine.queued_count())
            self.monitor.update_active_ranges(len(self.window))

    def active_count(self) -> int:
        return len(self.window)

    def _log_final_stats(self):
        self.logger.info("=== PIPELINE STOPPED ===")
        self.logger.info(f"Ranges leased: {self.stats.ranges_leased}")
        self.logger.info(f"Ranges submitted: {self.stats.ranges_submitted}")
        self.logger.info(f"Profiles crawled: {self.stats.profiles_crawled}")
        self.logger.info(f"Edges found: {self.stats.edges_found}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
