"""
HTTP client for the range tracker.
"""

import asyncio
import logging
from typing import Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..errors import TrackerError, TrackerSubmissionError

RANGE_SIZE = 10000


class TrackerClient:
    """
    Leases id ranges from the tracker and submits finished ones.

    ``POST /request`` answers with an empty body (nothing available) or a
    decimal ``k``; the leased range starts at ``k * 10000``.
    ``POST /done/{range_id}`` takes the compressed range payload.
    """

    def __init__(self, base_url: str, request_timeout: float = 60, range_size: int = RANGE_SIZE):
        self.base_url = base_url.rstrip('/')
        self.request_timeout = request_timeout
        self.range_size = range_size
        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=ClientTimeout(total=self.request_timeout))
            self.logger.info(f"Tracker client started for {self.base_url}")

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    async def request_lease(self) -> Optional[int]:
        """
        Ask the tracker for a range.

        Returns:
            The first profile id of the leased range, or None if no range
            is available

        Raises:
            TrackerError: if the tracker is unreachable or answers badly
        """
        try:
            async with self.session.post(f"{self.base_url}/request") as response:
                body = (await response.text()).strip()
                if response.status >= 400:
                    raise TrackerError(f"Lease request failed: HTTP {response.status}")
        except (ClientError, asyncio.TimeoutError) as e:
            raise TrackerError(f"Lease request failed: {e}") from e

        if not body:
            return None

        try:
            k = int(body)
        except ValueError:
            raise TrackerError(f"Unexpected lease response: {body[:100]!r}")
        if k < 0:
            raise TrackerError(f"Negative range in lease response: {k}")
        return k * self.range_size

    async def submit(self, range_id: int, payload: bytes):
        """
        Submit a finished range.

        Raises:
            TrackerSubmissionError: on any non-success answer or transport
                failure
        """
        url = f"{self.base_url}/done/{range_id}"
        headers = {'Content-Type': 'application/octet-stream'}
        try:
            async with self.session.post(url, data=payload, headers=headers) as response:
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise TrackerSubmissionError(
                        f"Tracker rejected range {range_id}: HTTP {response.status} {text[:200]}"
                    )
        except (ClientError, asyncio.TimeoutError) as e:
            raise TrackerSubmissionError(f"Could not submit range {range_id}: {e}") from e

        self.logger.info(f"Submitted range {range_id} ({len(payload)} bytes)")
