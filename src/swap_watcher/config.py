#!/usr/bin/env python3
"""Configuration management for the swap watcher.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {value!r}")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the chain being watched.

    Attributes:
        rpc_url: HTTP(S) or WS(S) RPC endpoint of the node
        pool_address: Checksummed address of the DAI/USDC pool contract
        start_block: First block to follow (None means the current head)
    """

    rpc_url: str
    pool_address: str
    start_block: int | None = None

    def __post_init__(self) -> None:
        """Validate source chain configuration."""
        if not self.rpc_url:
            raise ValueError("Node RPC URL is required (INFURA_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if not self.pool_address:
            raise ValueError(
                "Pool contract address is required (USDC_DAI_UNISWAP_POOL_CONTRACT)"
            )

        address = self.pool_address
        if not address.startswith('0x'):
            address = '0x' + address

        if not Web3.is_address(address):
            raise ValueError(f"Invalid pool contract address: {self.pool_address}")

        checksummed = Web3.to_checksum_address(address)
        if checksummed != self.pool_address:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, 'pool_address', checksummed)

        if self.start_block is not None and self.start_block < 0:
            raise ValueError(f"Start block must be non-negative, got {self.start_block}")

    @property
    def is_websocket(self) -> bool:
        return urlparse(self.rpc_url).scheme in ('ws', 'wss')


@dataclass(frozen=True, slots=True)
class ConfirmationConfig:
    """Confirmation and reorg buffer settings.

    Attributes:
        confirmation_depth: Descendant blocks required before a block is released
        buffer_slack: Extra retained depth beyond the confirmation depth
        verify_confirmed_hashes: Re-check each block's hash against the node before release
    """

    confirmation_depth: int = 5
    buffer_slack: int = 0
    verify_confirmed_hashes: bool = True

    def __post_init__(self) -> None:
        """Validate confirmation configuration."""
        if self.confirmation_depth < 1:
            raise ValueError(
                f"Confirmation depth must be at least 1, got {self.confirmation_depth}"
            )
        if self.confirmation_depth > 64:
            raise ValueError(
                f"Confirmation depth too high (max 64), got {self.confirmation_depth}"
            )
        if self.buffer_slack < 0:
            raise ValueError(f"Buffer slack must be non-negative, got {self.buffer_slack}")
        if self.buffer_slack > 64:
            raise ValueError(f"Buffer slack too high (max 64), got {self.buffer_slack}")

    @property
    def retained_depth(self) -> int:
        """Deepest reorg that can still be recovered from the ledger."""
        return self.confirmation_depth + self.buffer_slack


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for polling the node."""
    polling_interval: int = 12  # seconds between head polls
    request_timeout: int = 30  # RPC request timeout in seconds
    retry_count: int = 3  # retry attempts for transient RPC failures

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.retry_count < 0:
            raise ValueError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ValueError(f"Retry count too high (max 10), got {self.retry_count}")


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    """Main configuration for the swap watcher.

    Attributes:
        source_chain: Node endpoint and pool contract
        confirmation: Confirmation depth and reorg buffer
        monitoring: Polling and retry settings
    """

    source_chain: SourceChainConfig
    confirmation: ConfirmationConfig
    monitoring: MonitoringConfig

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """Load configuration from environment variables.

        Returns:
            WatcherConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_url = os.environ.get("INFURA_URL", "")
        if not rpc_url:
            raise ValueError(
                "INFURA_URL environment variable is required. "
                "This should be the node RPC endpoint (http, https, ws or wss)."
            )

        pool_address = os.environ.get("USDC_DAI_UNISWAP_POOL_CONTRACT", "")
        if not pool_address:
            raise ValueError(
                "USDC_DAI_UNISWAP_POOL_CONTRACT environment variable is required. "
                "This should be the Uniswap V3 DAI/USDC pool address."
            )

        start_block_raw = os.environ.get("START_BLOCK", "")
        start_block = _parse_int("START_BLOCK", start_block_raw) if start_block_raw else None

        source_config = SourceChainConfig(
            rpc_url=rpc_url,
            pool_address=pool_address,
            start_block=start_block
        )

        confirmation_config = ConfirmationConfig(
            confirmation_depth=_parse_int(
                "CONFIRMATION_DEPTH", os.environ.get("CONFIRMATION_DEPTH", "5")
            ),
            buffer_slack=_parse_int("BUFFER_SLACK", os.environ.get("BUFFER_SLACK", "0")),
            verify_confirmed_hashes=_parse_bool(
                "VERIFY_CONFIRMED_HASHES", os.environ.get("VERIFY_CONFIRMED_HASHES", "true")
            )
        )

        monitoring_config = MonitoringConfig(
            polling_interval=_parse_int(
                "POLLING_INTERVAL", os.environ.get("POLLING_INTERVAL", "12")
            ),
            request_timeout=_parse_int(
                "REQUEST_TIMEOUT", os.environ.get("REQUEST_TIMEOUT", "30")
            ),
            retry_count=_parse_int("RETRY_COUNT", os.environ.get("RETRY_COUNT", "3"))
        )

        return cls(
            source_chain=source_config,
            confirmation=confirmation_config,
            monitoring=monitoring_config
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Swap Watcher Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        logger.info(f"  RPC URL: {_redact_url(self.source_chain.rpc_url)}")
        logger.info(f"  Pool: {self.source_chain.pool_address}")
        start = self.source_chain.start_block
        logger.info(f"  Start Block: {start if start is not None else 'latest'}")

        logger.info("Confirmation Settings:")
        logger.info(f"  Confirmation Depth: {self.confirmation.confirmation_depth} blocks")
        logger.info(f"  Buffer Slack: {self.confirmation.buffer_slack} blocks")
        logger.info(f"  Verify Confirmed Hashes: {self.confirmation.verify_confirmed_hashes}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Retry Count: {self.monitoring.retry_count}")

        logger.info("=" * 60)


def _redact_url(url: str) -> str:
    """Hide the path of an RPC URL, where hosted providers keep the API key."""
    parsed = urlparse(url)
    if not parsed.path or parsed.path == "/":
        return url
    return f"{parsed.scheme}://{parsed.netloc}/[REDACTED]"
