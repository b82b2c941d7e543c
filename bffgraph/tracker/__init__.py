"""
Client for the central range tracker.
"""

from .client import TrackerClient

__all__ = ['TrackerClient']
