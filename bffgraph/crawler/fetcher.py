"""
Friend-page fetch engine with a global concurrency ceiling.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set, Union

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from .request_queue import FetchTask, PriorityQueue


@dataclass(frozen=True)
class Redirected:
    """The page answered with a redirect (private profile)."""
    location: Optional[str] = None


@dataclass(frozen=True)
class Ok:
    """The page answered 200 with a body."""
    body: str


@dataclass(frozen=True)
class HttpError:
    """The page answered with an unexpected status."""
    status: int


@dataclass(frozen=True)
class TransportError:
    """The request never produced a response (connection error, timeout)."""
    reason: str


FetchOutcome = Union[Redirected, Ok, HttpError, TransportError]
CompletionHandler = Callable[[FetchTask, FetchOutcome], None]


class FetchEngine:
    """
    Dispatches queued fetch tasks as aiohttp requests.

    Keeps at most ``max_concurrency`` requests outstanding. Every finished
    request, whatever happened to it, is reported to the completion handler
    exactly once. The engine never retries; that is the handler's decision.
    """

    def __init__(self, url_template: str, user_agent: str,
                 max_concurrency: int = 100, request_timeout: float = 60,
                 on_complete: Optional[CompletionHandler] = None):
        self.url_template = url_template
        self.user_agent = user_agent
        self.max_concurrency = max_concurrency
        self.request_timeout = request_timeout
        self.on_complete = on_complete

        self.logger = logging.getLogger(__name__)
        self.queue = PriorityQueue()

        # Session management
        self.session: Optional[ClientSession] = None
        self._outstanding = 0
        self._requests: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._failure: Optional[BaseException] = None

        # Statistics
        self.stats = {
            'total_requests': 0,
            'ok': 0,
            'redirected': 0,
            'http_errors': 0,
            'transport_errors': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the engine session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrency,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info(f"FetchEngine session started (max concurrency {self.max_concurrency})")

    async def close(self):
        """Cancel outstanding requests and close the session."""
        for request in list(self._requests):
            request.cancel()
        if self._requests:
            await asyncio.gather(*self._requests, return_exceptions=True)
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("FetchEngine session closed")

    def submit(self, task: FetchTask):
        """Queue a task and dispatch as much as the concurrency ceiling allows."""
        self.queue.enqueue(task)
        self._idle.clear()
        self._dispatch()

    def outstanding_count(self) -> int:
        """Requests dispatched but not yet completed."""
        return self._outstanding

    def queued_count(self) -> int:
        return len(self.queue)

    async def join(self):
        """Wait until nothing is queued or outstanding."""
        await self._idle.wait()

    def raise_for_failure(self):
        """Re-raise an exception that escaped the completion handler."""
        if self._failure is not None:
            raise self._failure

    def build_url(self, task: FetchTask) -> str:
        return self.url_template.format(
            profile_id=task.profile_id,
            page=task.page,
            random=random.random()
        )

    def _dispatch(self):
        if self.session is None:
            raise RuntimeError("FetchEngine.start() must be called before submitting tasks")

        while self._outstanding < self.max_concurrency:
            task = self.queue.dequeue()
            if task is None:
                break
            self._outstanding += 1
            request = asyncio.get_running_loop().create_task(self._run(task))
            self._requests.add(request)
            request.add_done_callback(self._requests.discard)

        if self._outstanding == 0 and self.queue.is_empty():
            self._idle.set()

    async def _run(self, task: FetchTask):
        try:
            try:
                outcome = await self.fetch(task)
            finally:
                self._outstanding -= 1
            if self.on_complete is not None:
                self.on_complete(task, outcome)
        except Exception as e:
            self.logger.error(f"Fetch of {task.to_dict()} failed: {e}", exc_info=True)
            if self._failure is None:
                self._failure = e

        self._dispatch()

    async def fetch(self, task: FetchTask) -> FetchOutcome:
        """
        Fetch one friend-list page.

        Args:
            task: The page to fetch

        Returns:
            The classified outcome; never raises for network failures
        """
        url = self.build_url(task)
        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, allow_redirects=False) as response:
                if response.status == 302:
                    self.stats['redirected'] += 1
                    return Redirected(response.headers.get('Location'))

                if response.status != 200:
                    self.stats['http_errors'] += 1
                    self.logger.debug(f"HTTP {response.status} fetching {url}")
                    return HttpError(response.status)

                content_bytes = await response.read()
                self.stats['ok'] += 1
                self.stats['total_bytes_downloaded'] += len(content_bytes)
                self.logger.debug(
                    f"Fetched {url}: {len(content_bytes)} bytes in {time.time() - start_time:.2f}s"
                )
                return Ok(self._decode(content_bytes, response.charset))

        except asyncio.TimeoutError:
            self.stats['transport_errors'] += 1
            self.logger.debug(f"Timeout fetching {url}")
            return TransportError("timeout")

        except ClientError as e:
            self.stats['transport_errors'] += 1
            self.logger.debug(f"Client error fetching {url}: {e}")
            return TransportError(f"client error: {e}")

        except OSError as e:
            self.stats['transport_errors'] += 1
            self.logger.debug(f"Socket error fetching {url}: {e}")
            return TransportError(f"os error: {e}")

    @staticmethod
    def _decode(content_bytes: bytes, charset: Optional[str]) -> str:
        encoding = charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            for fallback_encoding in ['utf-8', 'latin-1']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get engine statistics."""
        stats = self.stats.copy()
        stats['outstanding'] = self._outstanding
        stats['queued'] = len(self.queue)
        return stats
