"""
Crawler core components.
"""

from .request_queue import PriorityQueue, FetchTask, Priority
from .fetcher import FetchEngine, FetchOutcome, Redirected, Ok, HttpError, TransportError
from .parser import FriendsPageParser, FriendsPage, NOT_FOUND
from .range_crawler import RangeCrawler, RangeResult, ProfileStatus, RetryPolicy, RANGE_SIZE

__all__ = [
    'PriorityQueue', 'FetchTask', 'Priority',
    'FetchEngine', 'FetchOutcome', 'Redirected', 'Ok', 'HttpError', 'TransportError',
    'FriendsPageParser', 'FriendsPage', 'NOT_FOUND',
    'RangeCrawler', 'RangeResult', 'ProfileStatus', 'RetryPolicy', 'RANGE_SIZE'
]
