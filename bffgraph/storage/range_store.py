"""
Local storage of finished ranges.
One text file per range, partitioned by id prefix.
"""

import logging
import zlib
from pathlib import Path
from typing import Any, Dict

from ..crawler.range_crawler import RangeResult
from ..errors import StorageError


def render_range(result: RangeResult) -> str:
    """Render a finished range as ``id:...`` lines in ascending id order."""
    return "\n".join(result.to_lines())


def compress_payload(text: str) -> bytes:
    """zlib-deflate the UTF-8 payload for submission to the tracker."""
    return zlib.compress(text.encode('utf-8'))


class RangeStore:
    """Writes finished ranges below a data directory."""

    def __init__(self, data_directory: str):
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'ranges_stored': 0,
            'total_size_bytes': 0
        }

    def path_for(self, range_id: int) -> Path:
        """
        File path for a range, derived from its zero-padded first id.

        E.g. range 10000 -> ``data/000/00001____.txt``.
        """
        profile_id_s = f"{range_id:09d}"
        return self.data_directory / profile_id_s[:3] / f"{profile_id_s[:5]}____.txt"

    def store(self, result: RangeResult, text: str) -> Path:
        """Write the rendered range to its file and return the path."""
        file_path = self.path_for(result.range_id)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(text + "\n")
        except OSError as e:
            raise StorageError(f"Failed to write range {result.range_id} to {file_path}: {e}") from e

        self.stats['ranges_stored'] += 1
        self.stats['total_size_bytes'] += file_path.stat().st_size
        self.logger.debug(f"Stored range {result.range_id} to {file_path}")
        return file_path

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()
