"""
Test doubles shared by the crawler tests.
"""

import asyncio
import random
from typing import Callable, Dict, List, Optional, Tuple

from bffgraph.crawler.fetcher import FetchOutcome, HttpError, Ok, Redirected
from bffgraph.crawler.request_queue import FetchTask, PriorityQueue
from bffgraph.errors import TrackerSubmissionError


def build_page(profile_id: int, friend_ids: List[int], max_page: int = 0,
               complete: bool = True) -> str:
    """Render a friend-list page the way the parser expects it."""
    tabs = "\n".join(
        f'<div class="friendDetailsTab">'
        f'<a href="http://profiles.friendster.com/{friend_id}">Friend {friend_id}</a>'
        f'</div>'
        for friend_id in friend_ids
    )
    pages = "\n".join(
        f'<a href="/friends/{profile_id}/{page}">{page + 1}</a>'
        for page in range(max_page + 1)
    )
    html = f"<html><body>\n{tabs}\n<div class=\"pager\">{pages}</div>\n</body></html>\n"
    if not complete:
        return html[:len(html) // 2]
    return html


NOT_FOUND_PAGE = "<html><body><p>Invalid User ID</p></body></html>"


class ManualEngine:
    """
    Engine double driven by the test: tasks sit in a real PriorityQueue
    until the test takes them out and completes them.
    """

    def __init__(self):
        self.queue = PriorityQueue()
        self.submitted: List[FetchTask] = []
        self.on_complete = None

    def submit(self, task: FetchTask):
        self.submitted.append(task)
        self.queue.enqueue(task)

    def next(self) -> Optional[FetchTask]:
        return self.queue.dequeue()


class SimulatedEngine:
    """
    Engine double for pipeline tests: every submitted task completes after a
    short random delay with the outcome chosen by ``responder``.
    """

    def __init__(self, responder: Callable[[FetchTask], FetchOutcome],
                 max_delay: float = 0.003, seed: int = 0):
        self.responder = responder
        self.max_delay = max_delay
        self.random = random.Random(seed)
        self.on_complete = None
        self.outstanding = 0
        self.forced_outstanding: Optional[int] = None
        self.dispatched: List[FetchTask] = []
        self._failure: Optional[BaseException] = None

    def submit(self, task: FetchTask):
        self.outstanding += 1
        self.dispatched.append(task)
        loop = asyncio.get_running_loop()
        loop.call_later(self.random.uniform(0, self.max_delay), self._complete, task)

    def _complete(self, task: FetchTask):
        self.outstanding -= 1
        try:
            self.on_complete(task, self.responder(task))
        except Exception as e:
            if self._failure is None:
                self._failure = e

    def outstanding_count(self) -> int:
        if self.forced_outstanding is not None:
            return self.forced_outstanding
        return self.outstanding

    def queued_count(self) -> int:
        return 0

    def raise_for_failure(self):
        if self._failure is not None:
            raise self._failure


def flaky_responder(failures_per_page: int = 1, seed: int = 0) -> Callable[[FetchTask], FetchOutcome]:
    """
    Responder where profile ``p`` has ``p % 3`` continuation pages and lists
    friends ``p + 1`` and ``p + 2`` on every page; every fifth profile is
    private and every seventh does not exist. Each page fails
    ``failures_per_page`` times before it answers.
    """
    rng = random.Random(seed)
    failures: Dict[Tuple[int, int], int] = {}

    def respond(task: FetchTask) -> FetchOutcome:
        key = (task.profile_id, task.page)
        if failures.get(key, 0) < failures_per_page:
            failures[key] = failures.get(key, 0) + 1
            if rng.random() < 0.5:
                return HttpError(500)
            return Ok(build_page(task.profile_id, [1], complete=False))

        if task.profile_id % 5 == 0:
            return Redirected()
        if task.profile_id % 7 == 0:
            return Ok(NOT_FOUND_PAGE)
        friends = [task.profile_id + 2, task.profile_id + 1]
        return Ok(build_page(task.profile_id, friends, max_page=task.profile_id % 3))

    return respond


def expected_line(profile_id: int) -> str:
    """The line flaky_responder's profile should end up as."""
    if profile_id % 5 == 0:
        return f"{profile_id}:private"
    if profile_id % 7 == 0:
        return f"{profile_id}:notfound"
    return f"{profile_id}:{profile_id + 1},{profile_id + 2}"


class FakeTracker:
    """Tracker double granting consecutive ranges and recording submissions."""

    def __init__(self, range_size: int, grants: Optional[int] = None,
                 on_lease: Optional[Callable[[int], None]] = None,
                 fail_submit: bool = False):
        self.range_size = range_size
        self.grants = grants
        self.on_lease = on_lease
        self.fail_submit = fail_submit
        self.lease_calls = 0
        self.leased: List[int] = []
        self.submitted: List[Tuple[int, bytes]] = []

    async def request_lease(self) -> Optional[int]:
        self.lease_calls += 1
        if self.grants is not None and len(self.leased) >= self.grants:
            return None
        range_id = len(self.leased) * self.range_size
        self.leased.append(range_id)
        if self.on_lease:
            self.on_lease(range_id)
        return range_id

    async def submit(self, range_id: int, payload: bytes):
        if self.fail_submit:
            raise TrackerSubmissionError(f"Tracker rejected range {range_id}: HTTP 500")
        self.submitted.append((range_id, payload))
