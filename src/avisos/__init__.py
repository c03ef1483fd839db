"""
Avisos - a small-team note organizer with edition-tracked edit history.

Notes are grouped into categories, can be flagged urgent, and are moved to a
recycle bin on deletion, where they stay restorable for a retention window
before an expiry sweep purges them together with their edit history.

This version uses synchronous storage operations with an async facade.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("avisos")
except PackageNotFoundError:
    __version__ = "1.0.0"
