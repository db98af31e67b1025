#!/usr/bin/env python3
"""Data models for the swap watcher.

This module provides immutable data classes for block headers, decoded swap
events, the records held by the block ledger, and the results exchanged
between the ledger, the reorg handler and the pipeline.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# token0 of the DAI/USDC pool is DAI, token1 is USDC
TOKEN0_SYMBOL = "DAI"
TOKEN0_DECIMALS = 18
TOKEN1_SYMBOL = "USDC"
TOKEN1_DECIMALS = 6

TOKEN_DECIMALS: dict[str, int] = {
    TOKEN0_SYMBOL: TOKEN0_DECIMALS,
    TOKEN1_SYMBOL: TOKEN1_DECIMALS,
}


class SwapDirection(Enum):
    """Which token was paid into the pool."""
    DAI_TO_USDC = "DAI -> USDC"
    USDC_TO_DAI = "USDC -> DAI"


class PipelineState(Enum):
    """Lifecycle state of the confirmation pipeline."""
    SYNCING = "syncing"
    TRACKING = "tracking"
    RECOVERING = "recovering"
    HALTED = "halted"


class HaltReason(Enum):
    """Why the pipeline reached the terminal HALTED state."""
    UNRECOVERABLE_REORG = "unrecoverable_reorg"
    SOURCE_FAILURE = "source_failure"
    DECODE_FAILURE = "decode_failure"


@dataclass(frozen=True, slots=True)
class SwapEvent:
    """A decoded Swap log from the DAI/USDC pool.

    Attributes:
        block_hash: Hash of the block containing the log
        block_height: Height of the block containing the log
        tx_hash: Hash of the transaction that emitted the log
        log_index: Index of the log entry in the block
        sender: Address that initiated the swap
        recipient: Address that received the output tokens
        amount_in: Raw units paid into the pool
        amount_out: Raw units paid out of the pool
        direction: Token pairing of the swap
    """

    block_hash: str
    block_height: int
    tx_hash: str
    log_index: int
    sender: str
    recipient: str
    amount_in: int
    amount_out: int
    direction: SwapDirection

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"SwapEvent(block={self.block_height}, "
            f"{self.direction.value}, "
            f"tx={self.tx_hash[:10]}..., "
            f"log={self.log_index})"
        )

    @property
    def token_in(self) -> str:
        return TOKEN0_SYMBOL if self.direction is SwapDirection.DAI_TO_USDC else TOKEN1_SYMBOL

    @property
    def token_out(self) -> str:
        return TOKEN1_SYMBOL if self.direction is SwapDirection.DAI_TO_USDC else TOKEN0_SYMBOL

    @property
    def unique_key(self) -> tuple[str, int]:
        """Identity used to guarantee a swap is emitted at most once."""
        return (self.tx_hash, self.log_index)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "block_hash": self.block_hash,
            "block_height": self.block_height,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
            "sender": self.sender,
            "recipient": self.recipient,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "direction": self.direction.name,
        }


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """The part of a block header the ledger needs.

    Attributes:
        height: The block number
        hash: The block hash (with 0x prefix)
        parent_hash: Parent block hash (with 0x prefix)
        timestamp: Block timestamp (Unix timestamp)
    """

    height: int
    hash: str
    parent_hash: str
    timestamp: int = 0

    def __str__(self) -> str:
        return f"BlockHeader(number={self.height}, hash={self.hash[:10]}...)"


@dataclass(frozen=True, slots=True)
class BlockObservation:
    """A block header together with the raw Swap logs it contains."""

    header: BlockHeader
    logs: tuple[Mapping[str, Any], ...] = ()


@dataclass(frozen=True, slots=True)
class BlockRecord:
    """A block held by the ledger along with its decoded swap candidates.

    Candidates are kept in log-index order.
    """

    height: int
    hash: str
    parent_hash: str
    candidates: tuple[SwapEvent, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return (
            f"BlockRecord(number={self.height}, "
            f"hash={self.hash[:10]}..., "
            f"swaps={len(self.candidates)})"
        )


# Results of BlockLedger.observe

@dataclass(frozen=True, slots=True)
class Appended:
    height: int


@dataclass(frozen=True, slots=True)
class Duplicate:
    height: int


@dataclass(frozen=True, slots=True)
class GapDetected:
    expected: int
    got: int


@dataclass(frozen=True, slots=True)
class ReorgDetected:
    """A known block was replaced by a block with a different hash.

    Attributes:
        at_height: Lowest height known to be replaced
        depth: Number of blocks from at_height up to the head, inclusive
        expected_hash: Hash the ledger holds at at_height ("" if no longer known)
        observed_hash: Hash the chain now reports at at_height, if known
    """
    at_height: int
    depth: int
    expected_hash: str = ""
    observed_hash: str = ""


ObserveResult = Union[Appended, Duplicate, GapDetected, ReorgDetected]


# Actions returned by ReorgHandler.handle

@dataclass(frozen=True, slots=True)
class Recover:
    from_height: int


@dataclass(frozen=True, slots=True)
class Fatal:
    reason: str


ReorgAction = Union[Recover, Fatal]
