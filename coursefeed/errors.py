"""
Exception taxonomy.

Skipped feed entries are not represented here: the parser counts and logs
them, it never raises for a single malformed entry.
"""

from __future__ import annotations


class CourseFeedError(Exception):
    """Base class for all coursefeed errors."""


class FetchError(CourseFeedError):
    """The feed could not be downloaded, or the server answered with an error page."""


class EmptyFeedError(CourseFeedError):
    """The feed was downloaded but contained no parsable event."""


class StorageError(CourseFeedError):
    """Reading or writing persisted state failed."""
