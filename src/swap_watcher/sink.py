#!/usr/bin/env python3
"""Output of confirmed swaps."""

import logging
import sys
from collections import OrderedDict
from typing import Protocol, TextIO

from .models import TOKEN_DECIMALS, SwapEvent

# Get logger for this module
logger = logging.getLogger(__name__)


class SwapSink(Protocol):
    """Consumer of confirmed swaps, called once per event in chain order."""

    def emit(self, event: SwapEvent) -> None:
        ...


def format_amount(amount: int, decimals: int) -> str:
    """Render a raw token amount as a decimal string.

    Trailing zeros of the fractional part are trimmed, and whole amounts
    are printed without a decimal point.

    Args:
        amount: Raw integer amount
        decimals: Token decimals

    Returns:
        Decimal string, e.g. format_amount(1500000, 6) == "1.5"
    """
    sign = "-" if amount < 0 else ""
    quotient, remainder = divmod(abs(amount), 10 ** decimals)
    if remainder == 0:
        return f"{sign}{quotient}"
    fraction = str(remainder).rjust(decimals, "0").rstrip("0")
    return f"{sign}{quotient}.{fraction}"


class ConsoleSink:
    """Prints each confirmed swap on its own line.

    Keeps a bounded record of emitted swap identities and refuses to print
    the same swap twice.
    """

    def __init__(self, stream: TextIO | None = None, dedupe_window: int = 10000) -> None:
        """Initialize the ConsoleSink.

        Args:
            stream: Where to write (defaults to stdout)
            dedupe_window: Maximum number of swap identities to remember
        """
        self.stream = stream or sys.stdout
        self.dedupe_window = dedupe_window

        # Stores swap unique keys as keys, None as values
        self.emitted: OrderedDict[tuple[str, int], None] = OrderedDict()

        self.events_emitted = 0
        self.events_duplicated = 0

    def emit(self, event: SwapEvent) -> None:
        if event.unique_key in self.emitted:
            self.events_duplicated += 1
            logger.error(f"Refusing to emit {event} a second time")
            return

        if len(self.emitted) >= self.dedupe_window:
            # Remove oldest (first) item - FIFO eviction
            self.emitted.popitem(last=False)
        self.emitted[event.unique_key] = None

        self.stream.write(self.format(event) + "\n")
        self.stream.flush()
        self.events_emitted += 1

    @staticmethod
    def format(event: SwapEvent) -> str:
        amount_in = format_amount(event.amount_in, TOKEN_DECIMALS[event.token_in])
        amount_out = format_amount(event.amount_out, TOKEN_DECIMALS[event.token_out])
        return (
            f"Block {event.block_height} | Swap {event.direction.value}: "
            f"sender: {event.sender}, recipient: {event.recipient}, "
            f"in: {amount_in} {event.token_in}, out: {amount_out} {event.token_out} "
            f"(tx {event.tx_hash}, log {event.log_index})"
        )

    def get_metrics(self) -> dict[str, int]:
        return {
            "events_emitted": self.events_emitted,
            "events_duplicated": self.events_duplicated,
            "cache_size": len(self.emitted),
        }
