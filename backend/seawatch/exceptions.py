"""Exception hierarchy for the ingestion and live-view pipeline."""
from __future__ import annotations


class SeaWatchError(Exception):
    """Base class for all SeaWatch errors."""


class FeedConfigurationError(SeaWatchError):
    """The feed session cannot start (e.g. no credential configured)."""


class FeedDecodeError(SeaWatchError):
    """An inbound frame could not be decoded into a usable message."""


class StoreError(SeaWatchError):
    """A write or query against the live state store failed."""
