"""
Per-range crawl state: seeds fetches for every profile in a leased range,
folds page results into per-profile outcomes and decides retries and
continuation pages.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from ..errors import AlreadyFinalizedError, RangeIncompleteError, RetryLimitExceeded
from ..utils.logger import get_crawler_logger
from .fetcher import FetchOutcome, HttpError, Ok, Redirected, TransportError
from .parser import NOT_FOUND, FriendsPageParser
from .request_queue import FetchTask, Priority

RANGE_SIZE = 10000


class ProfileStatus(Enum):
    """Classification of one profile."""
    PENDING = 'pending'
    FRIENDS_SO_FAR = 'friends_so_far'
    PRIVATE = 'private'
    NOT_FOUND = 'notfound'
    FRIENDS = 'friends'

    @property
    def is_terminal(self) -> bool:
        return self in (ProfileStatus.PRIVATE, ProfileStatus.NOT_FOUND, ProfileStatus.FRIENDS)


@dataclass
class ProfileState:
    """Accumulated state of one profile while its pages come in."""
    status: ProfileStatus = ProfileStatus.PENDING
    friends: Set[int] = field(default_factory=set)


@dataclass(frozen=True)
class ProfileResult:
    """Final classification of one profile."""
    profile_id: int
    status: ProfileStatus
    friends: Tuple[int, ...] = ()

    def to_line(self) -> str:
        if self.status == ProfileStatus.FRIENDS:
            return f"{self.profile_id}:" + ",".join(str(friend) for friend in self.friends)
        return f"{self.profile_id}:{self.status.value}"


@dataclass
class RangeResult:
    """Finalized results of one range, ordered by profile id."""
    range_id: int
    profiles: List[ProfileResult]
    elapsed_time: float = 0.0

    @property
    def edge_count(self) -> int:
        return sum(len(profile.friends) for profile in self.profiles)

    def to_lines(self) -> List[str]:
        return [profile.to_line() for profile in self.profiles]


class RetryPolicy:
    """
    Decides whether a failed fetch is tried again.

    The default never gives up and never waits: a failed page is re-queued
    at HIGH priority immediately. Pass ``max_attempts`` to cap it.
    """

    def __init__(self, max_attempts: Optional[int] = None):
        self.max_attempts = max_attempts

    def should_retry(self, task: FetchTask, failures: int) -> bool:
        if self.max_attempts is None:
            return True
        return failures < self.max_attempts

    def retry_task(self, task: FetchTask) -> FetchTask:
        return FetchTask(task.profile_id, task.page, Priority.HIGH)


class RangeCrawler:
    """
    Crawls every profile of one leased range.

    All state changes happen in on_completion(), which the fetch engine calls
    from the event loop one completion at a time.
    """

    def __init__(self, range_id: int, engine, parser: Optional[FriendsPageParser] = None,
                 retry_policy: Optional[RetryPolicy] = None, range_size: int = RANGE_SIZE):
        self.range_id = range_id
        self.range_size = range_size
        self.engine = engine
        self.parser = parser or FriendsPageParser()
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = get_crawler_logger(__name__, range_id=range_id)

        self.profiles: Dict[int, ProfileState] = {
            profile_id: ProfileState() for profile_id in self.profile_ids
        }
        self._in_flight = 0
        self._terminal = 0
        self._failures: Dict[Tuple[int, int], int] = {}
        self._seeded = False
        self._finalized = False
        self.start_time = time.time()

    @property
    def profile_ids(self) -> range:
        return range(self.range_id, self.range_id + self.range_size)

    @property
    def last_id(self) -> int:
        return self.range_id + self.range_size - 1

    def __str__(self) -> str:
        return f"{self.range_id}..{self.last_id}"

    def seed(self):
        """Queue page 0 of every profile in the range at LOW priority."""
        if self._seeded:
            raise RuntimeError(f"Range {self} was already seeded")
        self._seeded = True
        self.start_time = time.time()

        for profile_id in self.profile_ids:
            self._submit(FetchTask(profile_id, 0, Priority.LOW))
        self.logger.info(f"Seeded {self.range_size} profiles for range {self}")

    def on_completion(self, task: FetchTask, outcome: FetchOutcome):
        """Fold one fetch outcome into the range state."""
        state = self.profiles.get(task.profile_id)
        if state is None:
            raise ValueError(f"Profile {task.profile_id} is not in range {self}")

        self._in_flight -= 1

        if state.status.is_terminal:
            self.logger.warning(
                f"Ignoring late result for {task.profile_id}/{task.page}: "
                f"profile already {state.status.value}"
            )
            return

        if isinstance(outcome, Redirected):
            self._finish(task, state, ProfileStatus.PRIVATE)

        elif isinstance(outcome, Ok) and self.parser.is_complete_page(outcome.body):
            self._handle_page(task, state, outcome.body)

        elif isinstance(outcome, Ok):
            self._retry(task, "truncated body")

        elif isinstance(outcome, HttpError):
            self._retry(task, f"HTTP {outcome.status}")

        elif isinstance(outcome, TransportError):
            self._retry(task, outcome.reason)

        else:
            raise TypeError(f"Unknown fetch outcome: {outcome!r}")

    def _handle_page(self, task: FetchTask, state: ProfileState, body: str):
        answer = self.parser.parse(task.profile_id, task.page, body)
        if answer is NOT_FOUND:
            self._finish(task, state, ProfileStatus.NOT_FOUND)
            return

        state.friends.update(answer.friend_ids)
        if answer.has_next_page(task.page):
            state.status = ProfileStatus.FRIENDS_SO_FAR
            self._failures.pop((task.profile_id, task.page), None)
            self._submit(FetchTask(task.profile_id, task.page + 1, Priority.NORMAL))
        else:
            self._finish(task, state, ProfileStatus.FRIENDS)

    def _finish(self, task: FetchTask, state: ProfileState, status: ProfileStatus):
        state.status = status
        if status != ProfileStatus.FRIENDS:
            state.friends.clear()
        self._terminal += 1
        self._failures.pop((task.profile_id, task.page), None)

    def _retry(self, task: FetchTask, reason: str):
        key = (task.profile_id, task.page)
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures

        if not self.retry_policy.should_retry(task, failures):
            raise RetryLimitExceeded(
                f"Giving up on {task.profile_id}/{task.page} after {failures} failures ({reason})"
            )

        self.logger.debug(f"Retrying {task.profile_id}/{task.page} ({reason}, failure {failures})")
        self._submit(self.retry_policy.retry_task(task))

    def _submit(self, task: FetchTask):
        self._in_flight += 1
        self.engine.submit(task)

    def open_count(self) -> int:
        """Fetches submitted but not yet completed."""
        return self._in_flight

    def done_count(self) -> int:
        """Profiles with a terminal outcome."""
        return self._terminal

    def is_done(self) -> bool:
        return self._in_flight == 0 and self._terminal == self.range_size

    def finalize(self) -> RangeResult:
        """
        Collect the results of a finished range.

        Returns:
            RangeResult with profiles in ascending id order and friend ids
            sorted and deduplicated

        Raises:
            RangeIncompleteError: if any profile has no terminal outcome
            AlreadyFinalizedError: if called a second time
        """
        if self._finalized:
            raise AlreadyFinalizedError(f"Range {self} was already finalized")

        unfinished = [
            profile_id for profile_id, state in self.profiles.items()
            if not state.status.is_terminal
        ]
        if unfinished or self._in_flight:
            raise RangeIncompleteError(
                f"Range {self} is incomplete: {len(unfinished)} profiles without a result, "
                f"{self._in_flight} fetches in flight (first: {unfinished[:5]})"
            )

        self._finalized = True
        profiles = [
            ProfileResult(profile_id, state.status, tuple(sorted(state.friends)))
            for profile_id, state in sorted(self.profiles.items())
        ]
        return RangeResult(self.range_id, profiles, time.time() - self.start_time)
