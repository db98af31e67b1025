#!/usr/bin/env python3
"""Unit tests for the SwapDecoder module."""

import pytest
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from swap_watcher.event_decoder import (
    SWAP_DATA_TYPES,
    SWAP_TOPIC,
    SwapDecoder,
    derive_direction,
)
from swap_watcher.exceptions import DecodeError
from swap_watcher.models import SwapDirection

from conftest import RECIPIENT, SENDER, block_hash, make_block, make_swap_log


class TestDeriveDirection:
    """Direction follows the sign of the pool's token deltas."""

    def test_dai_in_usdc_out(self):
        direction, amount_in, amount_out = derive_direction(1500 * 10 ** 18, -1499 * 10 ** 6)

        assert direction is SwapDirection.DAI_TO_USDC
        assert amount_in == 1500 * 10 ** 18
        assert amount_out == 1499 * 10 ** 6

    def test_usdc_in_dai_out(self):
        direction, amount_in, amount_out = derive_direction(-250 * 10 ** 18, 251 * 10 ** 6)

        assert direction is SwapDirection.USDC_TO_DAI
        assert amount_in == 251 * 10 ** 6
        assert amount_out == 250 * 10 ** 18

    def test_zero_output_keeps_direction(self):
        direction, _, amount_out = derive_direction(5, 0)

        assert direction is SwapDirection.DAI_TO_USDC
        assert amount_out == 0

    @pytest.mark.parametrize("amount0, amount1", [(1, 1), (-1, -1), (0, 0)])
    def test_inconsistent_amounts_rejected(self, amount0, amount1):
        with pytest.raises(ValueError, match="Inconsistent swap amounts"):
            derive_direction(amount0, amount1)


class TestSwapDecoder:
    """Test suite for SwapDecoder functionality."""

    def test_topic_matches_abi(self, decoder):
        assert decoder.swap_topic == SWAP_TOPIC
        assert SWAP_TOPIC == "0x" + Web3.keccak(
            text="Swap(address,address,int256,int256,uint160,uint128,int24)"
        ).hex().removeprefix("0x")

    def test_decode_dai_to_usdc(self, decoder):
        event = decoder.decode(make_swap_log(100, 3))

        assert event is not None
        assert event.direction is SwapDirection.DAI_TO_USDC
        assert event.token_in == "DAI"
        assert event.token_out == "USDC"
        assert event.amount_in == 1000 * 10 ** 18
        assert event.amount_out == 999 * 10 ** 6
        assert event.block_height == 100
        assert event.block_hash == block_hash(100)
        assert event.log_index == 3
        assert event.sender.lower() == SENDER
        assert event.recipient.lower() == RECIPIENT
        assert decoder.logs_decoded == 1

    def test_decode_usdc_to_dai(self, decoder):
        event = decoder.decode(make_swap_log(100, 0, amount0=-20 * 10 ** 18, amount1=20 * 10 ** 6))

        assert event.direction is SwapDirection.USDC_TO_DAI
        assert event.token_in == "USDC"
        assert event.amount_in == 20 * 10 ** 6
        assert event.amount_out == 20 * 10 ** 18

    def test_decode_hexbytes_fields(self, decoder):
        """LogReceipts from web3 carry HexBytes rather than strings."""
        raw = make_swap_log(100, 1)
        raw["topics"] = [HexBytes(topic) for topic in raw["topics"]]
        raw["blockHash"] = HexBytes(raw["blockHash"])
        raw["transactionHash"] = HexBytes(raw["transactionHash"])
        raw["data"] = HexBytes(raw["data"])

        event = decoder.decode(raw)

        assert event.block_hash == block_hash(100)
        assert event.tx_hash.startswith("0x")
        assert len(event.tx_hash) == 66

    def test_other_contract_skipped(self, decoder):
        raw = make_swap_log(100, 0, address="0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb7")

        assert decoder.decode(raw) is None
        assert decoder.logs_skipped == 1

    def test_other_event_skipped(self, decoder):
        raw = make_swap_log(100, 0)
        raw["topics"][0] = "0x" + "ab" * 32

        assert decoder.decode(raw) is None

    def test_removed_log_skipped(self, decoder):
        raw = make_swap_log(100, 0)
        raw["removed"] = True

        assert decoder.decode(raw) is None

    def test_missing_topics_is_decode_error(self, decoder):
        raw = make_swap_log(100, 0)
        raw["topics"] = raw["topics"][:2]

        with pytest.raises(DecodeError, match="topics"):
            decoder.decode(raw)

    def test_truncated_data_is_decode_error(self, decoder):
        raw = make_swap_log(100, 0)
        raw["data"] = raw["data"][:64]

        with pytest.raises(DecodeError, match="64 bytes"):
            decoder.decode(raw)

    def test_zero_amount_swap_skipped(self, decoder, caplog):
        """A swap that moved nothing is well-formed, just not reportable."""
        event = decoder.decode(make_swap_log(100, 0, amount0=0, amount1=0))

        assert event is None
        assert decoder.logs_skipped == 1
        assert decoder.logs_decoded == 0
        assert "Skipping swap" in caplog.text

    def test_one_sided_amounts_skipped(self, decoder):
        raw = make_swap_log(100, 0)
        raw["data"] = encode(SWAP_DATA_TYPES, [1, 1, 1, 1, 0])

        assert decoder.decode(raw) is None
        assert decoder.logs_skipped == 1

    def test_bad_log_index_is_decode_error(self, decoder):
        raw = make_swap_log(100, 0)
        raw["logIndex"] = None

        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(raw)
        assert exc_info.value.tx_hash == raw["transactionHash"]

    def test_zero_amount_swap_keeps_block_siblings(self, decoder):
        block = make_block(100, swaps=2)
        logs = (make_swap_log(100, 0, amount0=0, amount1=0), block.logs[1])

        events = decoder.decode_block(type(block)(header=block.header, logs=logs))

        assert [event.log_index for event in events] == [1]

    def test_decode_block_orders_by_log_index(self, decoder):
        block = make_block(100, swaps=3)
        shuffled = type(block)(header=block.header, logs=tuple(reversed(block.logs)))

        events = decoder.decode_block(shuffled)

        assert [event.log_index for event in events] == [0, 1, 2]

    def test_decode_block_rejects_foreign_log(self, decoder):
        block = make_block(100)
        foreign = type(block)(header=block.header, logs=(make_swap_log(100, 0, fork="b"),))

        with pytest.raises(DecodeError, match="belongs to block"):
            decoder.decode_block(foreign)

    def test_invalid_pool_address_rejected(self):
        with pytest.raises(ValueError):
            SwapDecoder(pool_address="not-an-address")

    def test_metrics(self, decoder):
        decoder.decode(make_swap_log(100, 0))
        decoder.decode(make_swap_log(100, 1, address="0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb7"))

        assert decoder.get_metrics() == {"logs_decoded": 1, "logs_skipped": 1}
