"""
Friend Graph Crawler

Leases ranges of profile ids from a tracker, downloads their friend lists and
submits the resulting edge lists back.
"""

__version__ = "3.0.0"
__description__ = "A pipelined social graph crawler driven by a central range tracker"
