#!/usr/bin/env python3
"""Exception types for the swap watcher.

Gaps and reorgs are reported as ledger results rather than exceptions; the
types below cover failures that cross a component boundary.
"""


class WatcherError(Exception):
    """Base class for swap watcher errors."""


class SourceError(WatcherError):
    """The block source gave up after exhausting its retries."""


class DecodeError(WatcherError):
    """A log matching the Swap filter could not be decoded.

    This indicates an ABI mismatch, so every later decode is suspect too.
    """

    def __init__(self, message: str, tx_hash: str | None = None, log_index: int | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.log_index = log_index

    def __str__(self) -> str:
        base = super().__str__()
        if self.tx_hash is None:
            return base
        return f"{base} (tx={self.tx_hash}, log_index={self.log_index})"
