#!/usr/bin/env python3
"""Decoding of Uniswap V3 Swap logs into SwapEvent records.

Logs that do not belong to the pool's Swap event are skipped, and so are swaps
whose amounts have no one-way direction (zero-amount swaps). A log that does
match but cannot be decoded raises DecodeError: that means the ABI no longer
matches the contract and nothing decoded afterwards can be trusted.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .exceptions import DecodeError
from .models import BlockObservation, SwapDirection, SwapEvent
from .utils.contract_utility import ContractUtility
from .utils.hex_utility import to_bytes_safe, to_hex_str, to_int, topic_to_address

# Get logger for this module
logger = logging.getLogger(__name__)

# keccak256("Swap(address,address,int256,int256,uint160,uint128,int24)")
SWAP_TOPIC = "0xc42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67"

SWAP_DATA_TYPES = ["int256", "int256", "uint160", "uint128", "int24"]
SWAP_DATA_SIZE = 32 * len(SWAP_DATA_TYPES)


def derive_direction(amount0: int, amount1: int) -> tuple[SwapDirection, int, int]:
    """Work out which token was paid in from the pool's signed amounts.

    The pool reports amounts from its own side: positive is paid into the
    pool, negative is paid out. token0 is DAI and token1 is USDC.

    Args:
        amount0: Signed DAI delta
        amount1: Signed USDC delta

    Returns:
        Tuple of (direction, amount_in, amount_out)

    Raises:
        ValueError: If the amounts do not describe a one-way swap
    """
    if amount0 > 0 and amount1 <= 0:
        return SwapDirection.DAI_TO_USDC, amount0, -amount1
    if amount1 > 0 and amount0 <= 0:
        return SwapDirection.USDC_TO_DAI, amount1, -amount0
    raise ValueError(f"Inconsistent swap amounts: amount0={amount0}, amount1={amount1}")


def event_signature(event_abi: Mapping[str, Any]) -> str:
    """Canonical signature of an event ABI entry, e.g. Swap(address,address,...)."""
    arg_types = ",".join(arg["type"] for arg in event_abi["inputs"])
    return f"{event_abi['name']}({arg_types})"


class SwapDecoder:
    """Decodes raw pool logs into SwapEvent values.

    This class is responsible for:
    - Skipping logs from other contracts or events
    - Decoding the Swap payload and indexed addresses
    - Deriving the swap direction
    - Maintaining metrics on decoded logs
    """

    def __init__(
        self,
        pool_address: str,
        contract_utility: ContractUtility | None = None
    ) -> None:
        """Initialize the SwapDecoder.

        Args:
            pool_address: Address of the DAI/USDC pool
            contract_utility: ABI loader (defaults to the bundled contracts)

        Raises:
            ValueError: If the bundled ABI does not describe the expected Swap event
        """
        self.pool_address = Web3.to_checksum_address(pool_address)
        self.contract_utility = contract_utility or ContractUtility()

        event_abi = self.contract_utility.get_event_abi("UniswapV3Pool", "Swap")
        self.swap_topic = to_hex_str(Web3.keccak(text=event_signature(event_abi)))
        if self.swap_topic != SWAP_TOPIC:
            raise ValueError(
                f"Swap event ABI mismatch: topic {self.swap_topic} != {SWAP_TOPIC}"
            )

        self.logs_decoded = 0
        self.logs_skipped = 0

        logger.info(f"SwapDecoder initialized for pool {self.pool_address}")

    def decode(self, raw_log: Mapping[str, Any]) -> SwapEvent | None:
        """Decode a raw log into a SwapEvent.

        Args:
            raw_log: Log entry as returned by eth_getLogs (dict or LogReceipt)

        Returns:
            SwapEvent, or None if the log is not a Swap from the pool or moved
            no tokens one way

        Raises:
            DecodeError: If the log matches the Swap filter but is malformed
        """
        if not self._matches(raw_log):
            self.logs_skipped += 1
            return None

        tx_hash = to_hex_str(raw_log.get('transactionHash'))
        try:
            log_index = to_int(raw_log.get('logIndex'))
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Invalid log index: {e}", tx_hash=tx_hash) from e

        topics = list(raw_log.get('topics') or [])
        if len(topics) < 3:
            raise DecodeError(
                f"Swap log has {len(topics)} topics, expected 3",
                tx_hash=tx_hash, log_index=log_index
            )

        try:
            sender = topic_to_address(topics[1])
            recipient = topic_to_address(topics[2])
            data = to_bytes_safe(raw_log.get('data') or b'')
            if len(data) != SWAP_DATA_SIZE:
                raise ValueError(f"Swap data is {len(data)} bytes, expected {SWAP_DATA_SIZE}")
            amount0, amount1, _sqrt_price, _liquidity, _tick = decode(SWAP_DATA_TYPES, data)
            block_height = to_int(raw_log.get('blockNumber'))
        except (DecodingError, TypeError, ValueError) as e:
            raise DecodeError(
                f"Failed to decode Swap log: {e}", tx_hash=tx_hash, log_index=log_index
            ) from e

        # Well-formed, but without a one-way direction (e.g. a zero-amount swap)
        try:
            direction, amount_in, amount_out = derive_direction(amount0, amount1)
        except ValueError as e:
            self.logs_skipped += 1
            logger.warning(f"Skipping swap in tx {tx_hash} (log {log_index}): {e}")
            return None

        self.logs_decoded += 1
        return SwapEvent(
            block_hash=to_hex_str(raw_log.get('blockHash')),
            block_height=block_height,
            tx_hash=tx_hash,
            log_index=log_index,
            sender=sender,
            recipient=recipient,
            amount_in=amount_in,
            amount_out=amount_out,
            direction=direction
        )

    def decode_logs(self, raw_logs: Iterable[Mapping[str, Any]]) -> tuple[SwapEvent, ...]:
        """Decode a batch of logs, returning the swaps in log-index order."""
        events = [event for raw_log in raw_logs if (event := self.decode(raw_log)) is not None]
        return tuple(sorted(events, key=lambda event: event.log_index))

    def decode_block(self, observation: BlockObservation) -> tuple[SwapEvent, ...]:
        """Decode the logs of an observed block.

        Raises:
            DecodeError: If a log claims to belong to another block
        """
        events = self.decode_logs(observation.logs)
        for event in events:
            if event.block_hash and event.block_hash != observation.header.hash:
                raise DecodeError(
                    f"Log belongs to block {event.block_hash}, "
                    f"not {observation.header.hash}",
                    tx_hash=event.tx_hash, log_index=event.log_index
                )
        return events

    def _matches(self, raw_log: Mapping[str, Any]) -> bool:
        if raw_log.get('removed'):
            logger.debug("Skipping removed log")
            return False

        address = raw_log.get('address')
        if address and str(address).lower() != self.pool_address.lower():
            return False

        topics = raw_log.get('topics') or []
        if not topics:
            return False
        return to_hex_str(topics[0]) == self.swap_topic

    def get_metrics(self) -> dict[str, int]:
        return {
            "logs_decoded": self.logs_decoded,
            "logs_skipped": self.logs_skipped,
        }
