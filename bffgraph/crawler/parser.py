"""
Friend-list page parser for extracting friend ids and pagination.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Union

from bs4 import BeautifulSoup


@dataclass
class FriendsPage:
    """Container for one parsed friend-list page."""
    friend_ids: List[int] = field(default_factory=list)
    max_page_seen: int = 0

    def has_next_page(self, page: int) -> bool:
        return self.max_page_seen > page


class NotFound:
    """Marker returned when the profile id does not exist."""

    def __repr__(self):
        return 'NotFound'


NOT_FOUND = NotFound()

ParseResult = Union[FriendsPage, NotFound]


class FriendsPageParser:
    """
    Parses friend-list HTML into friend ids and the highest page linked.
    """

    NOT_FOUND_MARKER = 'Invalid User ID'
    FRIEND_TAB = 'friendDetailsTab'

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        self.closing_marker_pattern = re.compile(r'</html>\s*\Z', re.IGNORECASE)
        self.profile_link_pattern = re.compile(r'profiles\.friendster\.com/([0-9]+)')

    def is_complete_page(self, html_content: str) -> bool:
        """A page is complete only if it ends with the closing html tag."""
        return bool(self.closing_marker_pattern.search(html_content))

    def parse(self, profile_id: int, page: int, html_content: str) -> ParseResult:
        """
        Parse one friend-list page.

        Args:
            profile_id: The profile whose friends the page lists
            page: The page index that was fetched
            html_content: Raw HTML content

        Returns:
            NOT_FOUND for unknown profiles, otherwise a FriendsPage
        """
        if self.NOT_FOUND_MARKER in html_content:
            return NOT_FOUND

        soup = BeautifulSoup(html_content, 'lxml')

        result = FriendsPage(max_page_seen=page)
        result.friend_ids = self._extract_friend_ids(soup)
        result.max_page_seen = self._extract_max_page(soup, profile_id, page)

        self.logger.debug(
            f"Parsed {profile_id}/{page}: {len(result.friend_ids)} friends, "
            f"max page {result.max_page_seen}"
        )
        return result

    def _extract_friend_ids(self, soup: BeautifulSoup) -> List[int]:
        """One friend per details tab: the first named link to a profile."""
        tabs = soup.find_all(class_=self.FRIEND_TAB) + soup.find_all(id=self.FRIEND_TAB)

        friend_ids = []
        for tab in tabs:
            for link in tab.find_all('a', href=True):
                match = self.profile_link_pattern.search(link['href'])
                if match and link.get_text(strip=True):
                    friend_ids.append(int(match.group(1)))
                    break
        return friend_ids

    def _extract_max_page(self, soup: BeautifulSoup, profile_id: int, page: int) -> int:
        page_link_pattern = re.compile(rf'/friends/{profile_id}/([0-9]+)')

        max_page = page
        for link in soup.find_all('a', href=True):
            match = page_link_pattern.search(link['href'])
            if match:
                max_page = max(max_page, int(match.group(1)))
        return max_page
