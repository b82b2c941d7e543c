"""
Exception hierarchy for the crawler.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class RangeIncompleteError(CrawlerError):
    """A range was finalized while some profile had no terminal outcome."""
    pass


class AlreadyFinalizedError(CrawlerError):
    """finalize() was called twice on the same range."""
    pass


class RetryLimitExceeded(CrawlerError):
    """A capped retry policy gave up on a fetch."""
    pass


class TrackerError(CrawlerError):
    """Communication with the tracker failed."""
    pass


class TrackerSubmissionError(TrackerError):
    """The tracker rejected or never received a completed range."""
    pass


class StorageError(CrawlerError):
    """Writing a range file failed."""
    pass
