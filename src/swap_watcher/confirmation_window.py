#!/usr/bin/env python3
"""Confirmation window for decoded swap candidates.

Candidates stay in the ledger until their block is CONFIRMATION_DEPTH blocks
below the head. Releasing them moves the confirmed_up_to watermark, which
never goes backwards, so a height is emitted at most once.
"""

import logging
from collections.abc import Iterator

from .block_ledger import BlockLedger
from .models import BlockRecord, SwapEvent

# Get logger for this module
logger = logging.getLogger(__name__)


class ConfirmationWindow:
    """Releases candidates once their block is deep enough."""

    def __init__(self, confirmation_depth: int) -> None:
        """Initialize the ConfirmationWindow.

        Args:
            confirmation_depth: Descendant blocks required before release
        """
        if confirmation_depth < 0:
            raise ValueError(
                f"Confirmation depth must be non-negative, got {confirmation_depth}"
            )
        self.confirmation_depth = confirmation_depth
        self.confirmed_up_to: int | None = None

        self.blocks_confirmed = 0
        self.events_released = 0

    def boundary(self, head_height: int) -> int:
        """Highest height that is confirmable at the given head."""
        return head_height - self.confirmation_depth

    def pending(self, ledger: BlockLedger, head_height: int) -> list[BlockRecord]:
        """Blocks the next advance would release, in ascending order.

        Has no side effects.
        """
        lowest = ledger.lowest_height
        if lowest is None:
            return []

        # Nothing confirmed yet: start at the first block ever retained
        start = lowest if self.confirmed_up_to is None else self.confirmed_up_to + 1
        boundary = self.boundary(head_height)
        return [
            record
            for height in ledger.heights()
            if start <= height <= boundary
            and (record := ledger.get(height)) is not None
        ]

    def advance(self, ledger: BlockLedger, head_height: int) -> Iterator[SwapEvent]:
        """Yield confirmed candidates in height then log-index order.

        The watermark moves past a block only after all of its candidates
        have been yielded. Stopping the iteration early leaves the rest for
        the next call.

        Args:
            ledger: Ledger holding the retained blocks
            head_height: Current head height

        Yields:
            SwapEvent values whose block is now confirmed
        """
        for record in self.pending(ledger, head_height):
            for candidate in record.candidates:
                self.events_released += 1
                yield candidate

            self.confirmed_up_to = record.height
            self.blocks_confirmed += 1
            logger.debug(
                f"Confirmed block {record.height} ({record.hash[:10]}...) "
                f"with {len(record.candidates)} swap(s)"
            )

    def is_confirmed(self, height: int) -> bool:
        return self.confirmed_up_to is not None and height <= self.confirmed_up_to

    def get_stats(self) -> dict[str, int | None]:
        return {
            "confirmed_up_to": self.confirmed_up_to,
            "blocks_confirmed": self.blocks_confirmed,
            "events_released": self.events_released,
        }
