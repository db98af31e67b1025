#!/usr/bin/env python3
"""Tests for the Web3BlockSource with a mocked node."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from hexbytes import HexBytes
from web3.exceptions import BlockNotFound

from swap_watcher.event_decoder import SWAP_TOPIC
from swap_watcher.exceptions import SourceError
from swap_watcher.utils.block_source import Web3BlockSource

from conftest import POOL_ADDRESS, block_hash, make_swap_log


class FakeEth:
    """Stand-in for w3.eth serving a linear chain up to `head`."""

    def __init__(self, head: int) -> None:
        self.head = head
        self.get_block = AsyncMock(side_effect=self._get_block)
        self.get_logs = AsyncMock(side_effect=self._get_logs)

    @property
    def block_number(self):
        return self._block_number()

    async def _block_number(self) -> int:
        return self.head

    def _get_block(self, height):
        if height > self.head:
            raise BlockNotFound(f"Block with id: '{height}' not found.")
        return {
            "number": height,
            "hash": HexBytes(block_hash(height)),
            "parentHash": HexBytes(block_hash(height - 1)),
            "timestamp": 1_700_000_000 + height,
        }

    def _get_logs(self, params):
        height = int(params["blockHash"].hex()[-8:], 16)
        return [make_swap_log(height, 0)]


@pytest.fixture
def eth():
    return FakeEth(head=105)


@pytest.fixture
def block_source(eth):
    w3 = MagicMock()
    w3.eth = eth
    w3.is_connected = AsyncMock(return_value=True)
    w3.provider.disconnect = AsyncMock()
    return Web3BlockSource(
        rpc_url="https://mainnet.infura.io/v3/key",
        pool_address=POOL_ADDRESS,
        swap_topic=SWAP_TOPIC,
        start_block=100,
        polling_interval=1,
        retry_count=3,
        w3=w3
    )


class TestConnection:
    """Tests for connecting to and disconnecting from the node."""

    @pytest.mark.asyncio
    async def test_connect_with_injected_client(self, block_source):
        await block_source.connect()

        block_source.w3.is_connected.assert_awaited_once()
        assert block_source.get_status()["connected"] is True

    @pytest.mark.asyncio
    async def test_connect_failure_raises_source_error(self, block_source):
        block_source.w3.is_connected = AsyncMock(return_value=False)

        with pytest.raises(SourceError, match="Failed to connect"):
            await block_source.connect()

    @pytest.mark.asyncio
    async def test_disconnect_closes_provider(self, block_source):
        provider = block_source.w3.provider

        await block_source.disconnect()

        provider.disconnect.assert_awaited_once()
        assert block_source.w3 is None

    @pytest.mark.asyncio
    async def test_calls_before_connect_fail(self):
        source = Web3BlockSource(
            rpc_url="http://localhost:8545",
            pool_address=POOL_ADDRESS,
            swap_topic=SWAP_TOPIC
        )

        with pytest.raises(SourceError, match="not connected"):
            await source.canonical_hash(100)

    def test_websocket_detection(self):
        source = Web3BlockSource(
            rpc_url="wss://mainnet.infura.io/ws/v3/key",
            pool_address=POOL_ADDRESS,
            swap_topic=SWAP_TOPIC
        )
        assert source.is_websocket


class TestNextBlock:
    """Tests for the forward cursor."""

    @pytest.mark.asyncio
    async def test_starts_at_configured_block(self, block_source, eth):
        observation = await block_source.next_block()

        assert observation.header.height == 100
        assert observation.header.hash == block_hash(100)
        assert observation.header.parent_hash == block_hash(99)
        assert len(observation.logs) == 1
        assert block_source.cursor == 101

        params = eth.get_logs.await_args.args[0]
        assert params["address"] == POOL_ADDRESS
        assert params["topics"] == [SWAP_TOPIC]

    @pytest.mark.asyncio
    async def test_defaults_to_current_head(self, block_source):
        block_source.start_block = None

        observation = await block_source.next_block()

        assert observation.header.height == 105

    @pytest.mark.asyncio
    async def test_delivers_consecutive_heights(self, block_source):
        heights = [(await block_source.next_block()).header.height for _ in range(3)]

        assert heights == [100, 101, 102]

    @pytest.mark.asyncio
    async def test_waits_for_new_head(self, block_source, eth):
        block_source.start_block = 106

        def new_block(_delay):
            eth.head = 106

        with patch(
            "swap_watcher.utils.block_source.asyncio.sleep",
            new_callable=AsyncMock,
            side_effect=new_block
        ) as sleep:
            observation = await block_source.next_block()

        sleep.assert_awaited_once_with(1)
        assert observation.header.height == 106
        assert block_source.last_seen_head == 106


class TestRecoveryReads:
    """fetch_range and canonical_hash read without moving the cursor."""

    @pytest.mark.asyncio
    async def test_fetch_range_stops_at_head(self, block_source):
        observations = await block_source.fetch_range(103, 110)

        assert [o.header.height for o in observations] == [103, 104, 105]
        assert block_source.cursor is None

    @pytest.mark.asyncio
    async def test_fetch_range_above_head_is_empty(self, block_source):
        assert await block_source.fetch_range(106, 108) == []

    @pytest.mark.asyncio
    async def test_canonical_hash(self, block_source):
        assert await block_source.canonical_hash(104) == block_hash(104)

    @pytest.mark.asyncio
    async def test_canonical_hash_missing_block(self, block_source):
        assert await block_source.canonical_hash(200) is None


class TestRetries:
    """Transient RPC failures are retried with exponential backoff."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, block_source, eth):
        block = eth._get_block(104)
        eth.get_block.side_effect = [ConnectionError("reset"), TimeoutError("slow"), block]

        with patch(
            "swap_watcher.utils.block_source.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            result = await block_source.canonical_hash(104)

        assert result == block_hash(104)
        assert [call.args[0] for call in sleep.await_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_source_error(self, block_source, eth):
        eth.get_block.side_effect = ConnectionError("node down")

        with patch(
            "swap_watcher.utils.block_source.asyncio.sleep", new_callable=AsyncMock
        ):
            with pytest.raises(SourceError, match="node down"):
                await block_source.canonical_hash(104)

        assert eth.get_block.await_count == 4

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, block_source, eth):
        block_source.retry_count = 8
        eth.get_block.side_effect = ConnectionError("node down")

        with patch(
            "swap_watcher.utils.block_source.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            with pytest.raises(SourceError):
                await block_source.canonical_hash(104)

        delays = [call.args[0] for call in sleep.await_args_list]
        assert max(delays) == 60
        assert len(delays) == 8


def test_status_reports_cursor(block_source):
    status = block_source.get_status()

    assert status["cursor"] is None
    assert status["pool_address"] == POOL_ADDRESS
    assert status["rpc_url"] == "https://mainnet.infura.io/v3/key"
