"""
Polling block source for the swap watcher.

Follows the chain head block by block over HTTP or WebSocket and hands each
block, with the pool's Swap logs, to a single consumer.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import urlparse

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import BlockNotFound
from web3.providers import WebSocketProvider

from ..exceptions import SourceError
from ..models import BlockHeader, BlockObservation
from .hex_utility import to_hex_str

T = TypeVar("T")


class Web3BlockSource:
    """
    Pull-based source of blocks and Swap logs.

    The cursor only moves forward through next_block(); fetch_range() and
    canonical_hash() read without touching it, so recovery re-fetches do
    not disturb the live stream.
    """

    def __init__(
        self,
        rpc_url: str,
        pool_address: str,
        swap_topic: str,
        start_block: int | None = None,
        polling_interval: float = 12,
        request_timeout: int = 30,
        retry_count: int = 3,
        w3: AsyncWeb3 | None = None
    ) -> None:
        """
        Initialize the block source.

        Args:
            rpc_url: HTTP(S) or WS(S) RPC endpoint URL
            pool_address: Address of the pool whose Swap logs are fetched
            swap_topic: topic0 of the Swap event
            start_block: First block to deliver (defaults to the head at first call)
            polling_interval: Seconds to wait when the head has not moved
            request_timeout: RPC request timeout in seconds
            retry_count: Retry attempts for transient RPC failures
            w3: Pre-built AsyncWeb3 instance (skips provider construction)
        """
        self.rpc_url = rpc_url
        self.pool_address = Web3.to_checksum_address(pool_address)
        self.swap_topic = swap_topic
        self.start_block = start_block
        self.polling_interval = polling_interval
        self.request_timeout = request_timeout
        self.retry_count = retry_count

        self.w3: AsyncWeb3 | None = w3
        self.cursor: int | None = None
        self.last_seen_head: int | None = None

        # Retry configuration
        self.base_delay = 1
        self.max_delay = 60

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def is_websocket(self) -> bool:
        return urlparse(self.rpc_url).scheme in ('ws', 'wss')

    async def connect(self) -> None:
        """Open the connection to the node.

        Raises:
            SourceError: If the node cannot be reached
        """
        if self.w3 is None:
            if self.is_websocket:
                self.logger.info(f"Connecting to WebSocket: {self.rpc_url}")
                self.w3 = await AsyncWeb3(
                    WebSocketProvider(self.rpc_url, request_timeout=self.request_timeout)
                )
            else:
                self.logger.info(f"Connecting to HTTP RPC: {self.rpc_url}")
                self.w3 = AsyncWeb3(AsyncHTTPProvider(
                    self.rpc_url,
                    request_kwargs={'timeout': self.request_timeout}
                ))

        if not await self.w3.is_connected():
            raise SourceError(f"Failed to connect to node at {self.rpc_url}")
        self.logger.info("Connected to node")

    async def disconnect(self) -> None:
        """Close the connection and clean up resources."""
        try:
            if self.w3 and hasattr(self.w3.provider, 'disconnect'):
                await self.w3.provider.disconnect()
        except Exception as e:
            self.logger.warning(f"Error during cleanup: {e}")
        finally:
            self.w3 = None

    async def next_block(self) -> BlockObservation:
        """
        Wait for and return the block at the cursor.

        Returns:
            The next block and its Swap logs

        Raises:
            SourceError: If the node keeps failing after all retries
        """
        if self.cursor is None:
            self.cursor = (
                self.start_block if self.start_block is not None
                else await self._latest_height()
            )
            self.logger.info(f"Following the chain from block {self.cursor}")

        while True:
            latest = await self._latest_height()
            if latest >= self.cursor:
                observation = await self._fetch_observation(self.cursor)
                if observation is not None:
                    self.cursor += 1
                    return observation
            await asyncio.sleep(self.polling_interval)

    async def fetch_range(self, from_height: int, to_height: int) -> list[BlockObservation]:
        """
        Fetch blocks from_height..to_height inclusive, stopping at the node's head.

        Args:
            from_height: First block to fetch
            to_height: Last block to fetch

        Returns:
            Observations in ascending height order
        """
        latest = await self._latest_height()
        last = min(to_height, latest)
        self.logger.info(f"Fetching blocks {from_height}-{last}")

        observations: list[BlockObservation] = []
        for height in range(from_height, last + 1):
            observation = await self._fetch_observation(height)
            if observation is None:
                break
            observations.append(observation)
        return observations

    async def canonical_hash(self, height: int) -> str | None:
        """Hash the node currently reports at height, or None if it has no such block."""
        async def fetch() -> str | None:
            try:
                block = await self._eth().get_block(height)
            except BlockNotFound:
                return None
            return to_hex_str(block['hash'])

        return await self._with_retries(f"get_block({height})", fetch)

    async def _latest_height(self) -> int:
        async def fetch() -> int:
            return await self._eth().block_number

        latest = await self._with_retries("eth_blockNumber", fetch)
        self.last_seen_head = latest
        return latest

    async def _fetch_observation(self, height: int) -> BlockObservation | None:
        async def fetch() -> BlockObservation | None:
            eth = self._eth()
            try:
                block = await eth.get_block(height)
            except BlockNotFound:
                return None

            block_hash = block['hash']
            logs = await eth.get_logs({
                'blockHash': block_hash,
                'address': self.pool_address,
                'topics': [self.swap_topic],
            })
            header = BlockHeader(
                height=block['number'],
                hash=to_hex_str(block_hash),
                parent_hash=to_hex_str(block['parentHash']),
                timestamp=block.get('timestamp', 0)
            )
            return BlockObservation(header=header, logs=tuple(logs))

        return await self._with_retries(f"fetch block {height}", fetch)

    def _eth(self) -> Any:
        if self.w3 is None:
            raise SourceError("Block source is not connected")
        return self.w3.eth

    async def _with_retries(self, description: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run an RPC call, retrying transient failures with exponential backoff.

        Raises:
            SourceError: After retry_count retries have failed
        """
        attempt = 0
        while True:
            try:
                return await call()
            except SourceError:
                raise
            except Exception as e:
                attempt += 1
                if attempt > self.retry_count:
                    self.logger.error(f"{description} failed after {self.retry_count} retries: {e}")
                    raise SourceError(f"{description} failed: {e}") from e

                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                self.logger.warning(
                    f"{description} failed (attempt {attempt}/{self.retry_count}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                await asyncio.sleep(delay)

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the block source.

        Returns:
            Dictionary with status information
        """
        return {
            "connected": self.w3 is not None,
            "cursor": self.cursor,
            "last_seen_head": self.last_seen_head,
            "pool_address": self.pool_address,
            "rpc_url": self.rpc_url,
        }
