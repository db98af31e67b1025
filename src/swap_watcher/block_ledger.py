#!/usr/bin/env python3
"""In-memory ledger of recently observed blocks.

The ledger keeps the last CONFIRMATION_DEPTH + BUFFER_SLACK + 1 blocks keyed by
height and checks every incoming block against the current head. A parent-hash
or hash mismatch against a retained block is reported as a reorg; a height
jump is reported as a gap. Hashes of evicted blocks are remembered (up to
history_size of them) so a competing block below the window is still
recognised as a reorg. The ledger never fetches anything itself.
"""

import logging
from collections import OrderedDict

from .models import (
    Appended,
    BlockRecord,
    Duplicate,
    GapDetected,
    ObserveResult,
    ReorgDetected,
)

# Get logger for this module
logger = logging.getLogger(__name__)


class BlockLedger:
    """Tracks the retained window of canonical blocks.

    Invariant: for every retained height h except the lowest,
    records[h].parent_hash == records[h - 1].hash.
    """

    def __init__(self, retained_depth: int, history_size: int = 10000) -> None:
        """Initialize the BlockLedger.

        Args:
            retained_depth: CONFIRMATION_DEPTH + BUFFER_SLACK; blocks deeper
                than this below the head are evicted
            history_size: Number of evicted block hashes to remember
        """
        if retained_depth < 0:
            raise ValueError(f"Retained depth must be non-negative, got {retained_depth}")

        self.retained_depth = retained_depth
        self.records: dict[int, BlockRecord] = {}
        self.head_height: int | None = None
        self.head_hash: str | None = None

        # Stores evicted heights as keys, block hashes as values
        self.evicted_hashes: OrderedDict[int, str] = OrderedDict()
        self.history_size = history_size

        # Metrics tracking
        self.blocks_appended = 0
        self.blocks_evicted = 0
        self.blocks_rewound = 0

    @property
    def is_empty(self) -> bool:
        return self.head_height is None

    @property
    def lowest_height(self) -> int | None:
        return min(self.records) if self.records else None

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, height: int) -> bool:
        return height in self.records

    def get(self, height: int) -> BlockRecord | None:
        return self.records.get(height)

    def heights(self) -> list[int]:
        """Retained heights in ascending order."""
        return sorted(self.records)

    def observe(self, record: BlockRecord) -> ObserveResult:
        """Check an incoming block against the ledger and append it if it extends the head.

        Args:
            record: The observed block with its decoded candidates

        Returns:
            Appended, Duplicate, GapDetected or ReorgDetected
        """
        # Syncing: the first block is accepted unconditionally
        if self.head_height is None or self.head_hash is None:
            self._append(record)
            logger.info(f"Ledger anchored at block {record.height} ({record.hash[:10]}...)")
            return Appended(record.height)

        if record.height == self.head_height + 1:
            if record.parent_hash == self.head_hash:
                self._append(record)
                return Appended(record.height)

            # The block we hold as head is no longer the parent of the next block
            return ReorgDetected(
                at_height=self.head_height,
                depth=1,
                expected_hash=self.head_hash,
                observed_hash=record.parent_hash
            )

        if record.height > self.head_height + 1:
            return GapDetected(expected=self.head_height + 1, got=record.height)

        stored = self.records.get(record.height)
        if stored is not None:
            expected_hash = stored.hash
        else:
            # Below the retained window; an unknown hash cannot be vouched for
            expected_hash = self.evicted_hashes.get(record.height, "")

        if expected_hash == record.hash:
            return Duplicate(record.height)

        return ReorgDetected(
            at_height=record.height,
            depth=self.head_height - record.height + 1,
            expected_hash=expected_hash,
            observed_hash=record.hash
        )

    def rewind(self, from_height: int) -> int:
        """Drop every record at or above from_height and reset the head.

        The head becomes the highest record below from_height. If none is
        left the ledger is empty again and the next block anchors it.

        Args:
            from_height: Lowest height to discard

        Returns:
            Number of records dropped
        """
        dropped = [height for height in self.records if height >= from_height]
        for height in dropped:
            del self.records[height]
        for height in [h for h in self.evicted_hashes if h >= from_height]:
            del self.evicted_hashes[height]
        self.blocks_rewound += len(dropped)

        if self.records:
            head = self.records[max(self.records)]
            self.head_height = head.height
            self.head_hash = head.hash
        else:
            self.head_height = None
            self.head_hash = None

        logger.info(
            f"Ledger rewound from block {from_height}: dropped {len(dropped)} block(s), "
            f"head is now {self.head_height}"
        )
        return len(dropped)

    def _append(self, record: BlockRecord) -> None:
        self.records[record.height] = record
        self.head_height = record.height
        self.head_hash = record.hash
        self.blocks_appended += 1
        logger.debug(f"Appended {record}")
        self._evict()

    def _evict(self) -> None:
        """Drop records older than head_height - retained_depth."""
        if self.head_height is None:
            return
        boundary = self.head_height - self.retained_depth
        for height in sorted(h for h in self.records if h < boundary):
            self.evicted_hashes[height] = self.records.pop(height).hash
            self.blocks_evicted += 1

        while len(self.evicted_hashes) > self.history_size:
            # Remove oldest (first) item - FIFO eviction
            self.evicted_hashes.popitem(last=False)

    def get_stats(self) -> dict[str, int | None]:
        """Get current ledger metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "head_height": self.head_height,
            "lowest_height": self.lowest_height,
            "retained": len(self.records),
            "hashes_remembered": len(self.evicted_hashes),
            "blocks_appended": self.blocks_appended,
            "blocks_evicted": self.blocks_evicted,
            "blocks_rewound": self.blocks_rewound,
        }
