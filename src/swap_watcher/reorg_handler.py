#!/usr/bin/env python3
"""Reorg policy.

A reorg is recoverable while the replaced block is still retained by the
ledger, i.e. its depth does not exceed CONFIRMATION_DEPTH + BUFFER_SLACK.
Anything deeper reaches blocks that were already evicted, so what was emitted
can no longer be checked and the watcher has to stop.
"""

import logging

from .models import Fatal, Recover, ReorgAction, ReorgDetected

# Get logger for this module
logger = logging.getLogger(__name__)


class ReorgHandler:
    """Decides between local recovery and a fatal halt."""

    def __init__(self, confirmation_depth: int, buffer_slack: int = 0) -> None:
        """Initialize the ReorgHandler.

        Args:
            confirmation_depth: Descendant blocks required before release
            buffer_slack: Extra retained depth beyond the confirmation depth
        """
        self.confirmation_depth = confirmation_depth
        self.buffer_slack = buffer_slack

        self.reorgs_bounded = 0
        self.reorgs_unbounded = 0
        self.deepest_reorg = 0

    @property
    def max_recoverable_depth(self) -> int:
        return self.confirmation_depth + self.buffer_slack

    def handle(self, reorg: ReorgDetected) -> ReorgAction:
        """Pick the action for a detected reorg.

        Args:
            reorg: The mismatch reported by the ledger

        Returns:
            Recover(from_height) when the depth is within the retained buffer,
            Fatal otherwise
        """
        self.deepest_reorg = max(self.deepest_reorg, reorg.depth)

        if reorg.depth <= self.max_recoverable_depth:
            self.reorgs_bounded += 1
            logger.warning(
                f"Reorg detected at block {reorg.at_height} (depth {reorg.depth}): "
                f"expected hash {reorg.expected_hash or '?'}, got {reorg.observed_hash or '?'}. "
                f"Recovering from block {reorg.at_height}"
            )
            return Recover(from_height=reorg.at_height)

        self.reorgs_unbounded += 1
        reason = (
            f"Reorganization detected at block {reorg.at_height}. "
            f"Expected hash: {reorg.expected_hash or '?'}, got: {reorg.observed_hash or '?'}. "
            f"Reorg depth {reorg.depth} exceeds the recoverable depth of "
            f"{self.max_recoverable_depth} blocks"
        )
        logger.error(reason)
        return Fatal(reason=reason)

    def get_stats(self) -> dict[str, int]:
        return {
            "reorgs_bounded": self.reorgs_bounded,
            "reorgs_unbounded": self.reorgs_unbounded,
            "deepest_reorg": self.deepest_reorg,
        }
