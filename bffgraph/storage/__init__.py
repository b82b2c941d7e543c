"""
Storage layer for finished ranges.
"""

from .range_store import RangeStore, render_range, compress_payload

__all__ = ['RangeStore', 'render_range', 'compress_payload']
