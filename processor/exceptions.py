"""Exceptions raised by calendar import and match reconciliation."""


class IcsReadError(Exception):
    """Calendar input could not be read as text."""


class InvalidScoreError(ValueError):
    """Score fields violate the both-or-neither, non-negative rule."""


class ImportedMatchEditError(ValueError):
    """An imported match was edited in place instead of being promoted."""


class PromotionError(Exception):
    """Promoting an imported match into the remote store failed.

    The imported cache entry is left untouched; ``match`` identifies the
    entry so the caller can retry.
    """

    def __init__(self, message: str, match):
        super().__init__(message)
        self.match = match


class CacheReadError(Exception):
    """The stored import cache is not valid JSON."""
