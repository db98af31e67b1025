"""Shared fixtures: a scripted in-memory chain and block source."""

from typing import Any

import pytest
from eth_abi import encode

from swap_watcher.config import ConfirmationConfig
from swap_watcher.event_decoder import SWAP_DATA_TYPES, SWAP_TOPIC, SwapDecoder
from swap_watcher.exceptions import SourceError
from swap_watcher.models import BlockHeader, BlockObservation, SwapEvent
from swap_watcher.pipeline import ConfirmationPipeline

POOL_ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
SENDER = "0x1234567890abcdef1234567890abcdef12345678"
RECIPIENT = "0x742d35cc6634c0532925a3b844bc9e7595f0beb7"

SQRT_PRICE_X96 = 79228162514264337593543950336
LIQUIDITY = 10 ** 18


def block_hash(height: int, fork: str = "a") -> str:
    """Deterministic 32-byte hash for a block on a given fork."""
    return "0x" + f"{ord(fork):02x}{height:062x}"


def tx_hash(height: int, index: int, fork: str = "a") -> str:
    return "0x" + f"{ord(fork):02x}{height:040x}{index:022x}"


def topic_for(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def make_swap_log(
    height: int,
    log_index: int,
    fork: str = "a",
    amount0: int = 1000 * 10 ** 18,
    amount1: int = -999 * 10 ** 6,
    address: str = POOL_ADDRESS,
) -> dict[str, Any]:
    """A Swap log shaped like an eth_getLogs result."""
    return {
        "address": address,
        "blockHash": block_hash(height, fork),
        "blockNumber": height,
        "transactionHash": tx_hash(height, log_index, fork),
        "logIndex": log_index,
        "topics": [SWAP_TOPIC, topic_for(SENDER), topic_for(RECIPIENT)],
        "data": encode(SWAP_DATA_TYPES, [amount0, amount1, SQRT_PRICE_X96, LIQUIDITY, 12]),
        "removed": False,
    }


def make_block(
    height: int,
    fork: str = "a",
    parent_fork: str | None = None,
    swaps: int = 1,
) -> BlockObservation:
    """A block on `fork` whose parent lives on `parent_fork` (defaults to the same fork)."""
    header = BlockHeader(
        height=height,
        hash=block_hash(height, fork),
        parent_hash=block_hash(height - 1, parent_fork or fork),
        timestamp=1_700_000_000 + height * 12,
    )
    logs = tuple(make_swap_log(height, index, fork) for index in range(swaps))
    return BlockObservation(header=header, logs=logs)


def make_chain(start: int, end: int, fork: str = "a", branch_from: str | None = None) -> list[BlockObservation]:
    """Consecutive blocks start..end on one fork; the first block's parent is on branch_from."""
    blocks = []
    for height in range(start, end + 1):
        parent_fork = branch_from if height == start and branch_from else fork
        blocks.append(make_block(height, fork, parent_fork))
    return blocks


class FakeBlockSource:
    """Scripted block source.

    `deliveries` is what next_block() hands out in order; `canonical` is what
    the node currently reports for fetch_range() and canonical_hash().
    """

    def __init__(self) -> None:
        self.deliveries: list[BlockObservation] = []
        self.canonical: dict[int, BlockObservation] = {}
        self.fetch_calls: list[tuple[int, int]] = []
        self.hash_calls: list[int] = []
        self.on_fetch = None

    def set_canonical(self, blocks: list[BlockObservation]) -> None:
        for block in blocks:
            self.canonical[block.header.height] = block

    def deliver(self, blocks: list[BlockObservation]) -> None:
        self.deliveries.extend(blocks)

    async def next_block(self) -> BlockObservation:
        if not self.deliveries:
            raise SourceError("no more blocks")
        return self.deliveries.pop(0)

    async def fetch_range(self, from_height: int, to_height: int) -> list[BlockObservation]:
        self.fetch_calls.append((from_height, to_height))
        if self.on_fetch is not None:
            self.on_fetch(from_height, to_height)
        blocks = []
        for height in range(from_height, to_height + 1):
            if height not in self.canonical:
                break
            blocks.append(self.canonical[height])
        return blocks

    async def canonical_hash(self, height: int) -> str | None:
        self.hash_calls.append(height)
        block = self.canonical.get(height)
        return block.header.hash if block else None


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[SwapEvent] = []

    def emit(self, event: SwapEvent) -> None:
        self.events.append(event)


@pytest.fixture
def decoder():
    return SwapDecoder(pool_address=POOL_ADDRESS)


@pytest.fixture
def source():
    return FakeBlockSource()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_pipeline(source, sink, decoder):
    """Factory for a pipeline wired to the fake source and recording sink."""
    def factory(confirmation_depth: int = 5, buffer_slack: int = 0, verify: bool = True) -> ConfirmationPipeline:
        return ConfirmationPipeline(
            source=source,
            decoder=decoder,
            sink=sink,
            confirmation=ConfirmationConfig(
                confirmation_depth=confirmation_depth,
                buffer_slack=buffer_slack,
                verify_confirmed_hashes=verify,
            ),
        )
    return factory
