#!/usr/bin/env python3
"""Entry point for the swap watcher service.

Loads configuration from the environment (and an optional .env file),
then follows the chain until shutdown or an unrecoverable condition.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from swap_watcher.config import WatcherConfig
from swap_watcher.watcher import EXIT_CONFIG_ERROR, EXIT_OK, SwapWatcher


async def main() -> int:
    """Main entry point for the swap watcher.

    Parses startup arguments, loads configuration from environment,
    and runs the watcher until it stops.

    Returns:
        Process exit code
    """
    load_dotenv()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Swap Watcher - reorg-safe feed of Uniswap V3 DAI/USDC swaps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  INFURA_URL                      - Node RPC endpoint (http, https, ws or wss)
  USDC_DAI_UNISWAP_POOL_CONTRACT  - Uniswap V3 DAI/USDC pool address
  CONFIRMATION_DEPTH              - Blocks before a swap is emitted (default: 5)
  BUFFER_SLACK                    - Extra retained blocks for reorg recovery (default: 0)
  VERIFY_CONFIRMED_HASHES         - Re-check block hashes before emitting (default: true)
  START_BLOCK                     - First block to follow (default: current head)
  POLLING_INTERVAL                - Head polling interval in seconds (default: 12)
  REQUEST_TIMEOUT                 - RPC timeout in seconds (default: 30)
  RETRY_COUNT                     - Retries for transient RPC errors (default: 3)
  LOG_LEVEL                       - Logging level (can be overridden with --log-level)

Exit codes: 0 shutdown, 1 configuration error, 2 unrecoverable reorg,
            3 node failure, 4 decode failure
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    logger.info("=== Swap Watcher Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: WatcherConfig = WatcherConfig.from_env()
        watcher: SwapWatcher = SwapWatcher(config)
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - INFURA_URL: Node RPC endpoint")
        logger.error("  - USDC_DAI_UNISWAP_POOL_CONTRACT: Uniswap V3 DAI/USDC pool address")
        logger.error("  - CONFIRMATION_DEPTH / BUFFER_SLACK: non-negative integers")
        return EXIT_CONFIG_ERROR

    return await watcher.run()


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        exit_code = EXIT_OK
    sys.exit(exit_code)
