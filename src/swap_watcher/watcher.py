#!/usr/bin/env python3
"""Service wiring for the swap watcher.

Builds the decoder, sink, block source and confirmation pipeline from a
WatcherConfig, runs the pipeline until it halts and maps the halt reason to
the process exit code.
"""

import logging

from .config import WatcherConfig
from .event_decoder import SwapDecoder
from .exceptions import SourceError
from .models import HaltReason
from .pipeline import ConfirmationPipeline
from .sink import ConsoleSink, SwapSink
from .utils.block_source import Web3BlockSource

# Get logger for this module
logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_UNRECOVERABLE_REORG = 2
EXIT_SOURCE_FAILURE = 3
EXIT_DECODE_FAILURE = 4

_EXIT_CODES: dict[HaltReason, int] = {
    HaltReason.UNRECOVERABLE_REORG: EXIT_UNRECOVERABLE_REORG,
    HaltReason.SOURCE_FAILURE: EXIT_SOURCE_FAILURE,
    HaltReason.DECODE_FAILURE: EXIT_DECODE_FAILURE,
}


def exit_code_for(reason: HaltReason | None) -> int:
    """Map a halt reason to the process exit code (0 when not halted)."""
    if reason is None:
        return EXIT_OK
    return _EXIT_CODES[reason]


class SwapWatcher:
    """
    Swap watcher that follows the DAI/USDC pool on the configured node
    and prints every swap once its block is confirmed.
    """

    def __init__(
        self,
        config: WatcherConfig,
        sink: SwapSink | None = None,
        source: Web3BlockSource | None = None
    ) -> None:
        """
        Initialize the SwapWatcher with configuration.

        :param config: Watcher configuration object
        :param sink: Destination for confirmed swaps (defaults to stdout)
        :param source: Block source (defaults to a Web3BlockSource built from config)
        """
        self.config = config
        logger.info("Starting SwapWatcher initialization")
        self.config.log_config()

        self.decoder = SwapDecoder(pool_address=config.source_chain.pool_address)
        self.sink = sink or ConsoleSink()
        self.source = source or Web3BlockSource(
            rpc_url=config.source_chain.rpc_url,
            pool_address=config.source_chain.pool_address,
            swap_topic=self.decoder.swap_topic,
            start_block=config.source_chain.start_block,
            polling_interval=config.monitoring.polling_interval,
            request_timeout=config.monitoring.request_timeout,
            retry_count=config.monitoring.retry_count
        )
        self.pipeline = ConfirmationPipeline(
            source=self.source,
            decoder=self.decoder,
            sink=self.sink,
            confirmation=config.confirmation
        )
        logger.info("SwapWatcher initialized")

    async def run(self) -> int:
        """
        Main entry point for the SwapWatcher.
        Connects to the node and runs the pipeline until it halts.

        :return: Process exit code
        """
        logger.info(f"Watching Swap events on {self.config.source_chain.pool_address}")
        try:
            await self.source.connect()
        except SourceError as e:
            logger.error(f"Could not connect to the node: {e}")
            return EXIT_SOURCE_FAILURE

        try:
            await self.pipeline.run()
        finally:
            logger.info("Cleaning up...")
            self.pipeline.log_stats()
            await self.source.disconnect()
            logger.info("SwapWatcher stopped")

        logger.error(
            f"Halted: {self.pipeline.halt_detail}. "
            "Restart with fresh state after checking the node."
        )
        return exit_code_for(self.pipeline.halt_reason)
