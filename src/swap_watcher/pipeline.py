#!/usr/bin/env python3
"""Confirmation pipeline driving the ledger, window and reorg handler.

One pipeline owns one ledger, one confirmation window and one reorg handler.
Blocks are ingested strictly one at a time; the only suspension points are
calls into the block source.

State machine:
    SYNCING -> TRACKING          first block accepted
    TRACKING -> RECOVERING       bounded reorg detected
    RECOVERING -> TRACKING       replacement blocks re-fetched and appended
    any -> HALTED                unbounded reorg, source or decode failure
"""

import dataclasses
import logging
from typing import Any, Protocol

from .block_ledger import BlockLedger
from .config import ConfirmationConfig
from .confirmation_window import ConfirmationWindow
from .event_decoder import SwapDecoder
from .exceptions import DecodeError, SourceError
from .models import (
    Appended,
    BlockObservation,
    BlockRecord,
    Duplicate,
    Fatal,
    GapDetected,
    HaltReason,
    PipelineState,
    ReorgDetected,
)
from .reorg_handler import ReorgHandler
from .sink import SwapSink

# Get logger for this module
logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    """What the pipeline needs from a block source."""

    async def next_block(self) -> BlockObservation:
        ...

    async def fetch_range(self, from_height: int, to_height: int) -> list[BlockObservation]:
        ...

    async def canonical_hash(self, height: int) -> str | None:
        ...


class ConfirmationPipeline:
    """Turns a stream of observed blocks into confirmed, reorg-safe swaps."""

    def __init__(
        self,
        source: BlockSource,
        decoder: SwapDecoder,
        sink: SwapSink,
        confirmation: ConfirmationConfig
    ) -> None:
        """Initialize the ConfirmationPipeline.

        Args:
            source: Supplier of blocks and their Swap logs
            decoder: Turns raw logs into SwapEvent candidates
            sink: Receives confirmed swaps in chain order
            confirmation: Confirmation depth, buffer slack and verification switch
        """
        self.source = source
        self.decoder = decoder
        self.sink = sink
        self.confirmation = confirmation

        self.ledger = BlockLedger(confirmation.retained_depth)
        self.window = ConfirmationWindow(confirmation.confirmation_depth)
        self.handler = ReorgHandler(confirmation.confirmation_depth, confirmation.buffer_slack)

        self.state = PipelineState.SYNCING
        self.halt_reason: HaltReason | None = None
        self.halt_detail = ""

        # Head height when the current recovery started; None while tracking
        self._recovery_peak: int | None = None

        self.blocks_ingested = 0
        self.events_emitted = 0
        self.gaps_filled = 0

    @property
    def is_halted(self) -> bool:
        return self.state is PipelineState.HALTED

    async def run(self) -> PipelineState:
        """Process blocks until the pipeline halts.

        Returns:
            The final state (always HALTED unless the task is cancelled)
        """
        logger.info(
            f"Pipeline starting (confirmation depth {self.confirmation.confirmation_depth}, "
            f"buffer slack {self.confirmation.buffer_slack})"
        )
        while not self.is_halted:
            await self.step()
        return self.state

    async def step(self) -> None:
        """Pull one block from the source and ingest it."""
        if self.is_halted:
            return
        try:
            observation = await self.source.next_block()
        except SourceError as e:
            self._halt(HaltReason.SOURCE_FAILURE, str(e))
            return
        await self.ingest(observation)

    async def ingest(self, observation: BlockObservation) -> None:
        """Decode an observed block and run it through the ledger.

        Failures are turned into the HALTED state rather than raised.
        """
        try:
            await self._ingest(observation)
        except DecodeError as e:
            self._halt(HaltReason.DECODE_FAILURE, f"Failed to decode block {observation.header.height}: {e}")
        except SourceError as e:
            self._halt(HaltReason.SOURCE_FAILURE, str(e))

    async def _ingest(self, observation: BlockObservation) -> None:
        if self.is_halted:
            return

        record = self._to_record(observation)
        self.blocks_ingested += 1
        result = self.ledger.observe(record)

        if isinstance(result, Appended):
            if self.state is PipelineState.SYNCING:
                self.state = PipelineState.TRACKING
            await self._release()

        elif isinstance(result, Duplicate):
            logger.debug(f"Block {result.height} already in the ledger")

        elif isinstance(result, GapDetected):
            await self._fill_gap(result, observation)

        elif isinstance(result, ReorgDetected):
            await self._recover(result, observation.header.height)

    def _to_record(self, observation: BlockObservation) -> BlockRecord:
        header = observation.header
        return BlockRecord(
            height=header.height,
            hash=header.hash,
            parent_hash=header.parent_hash,
            candidates=self.decoder.decode_block(observation)
        )

    async def _fill_gap(self, gap: GapDetected, held: BlockObservation) -> None:
        logger.warning(f"Gap detected: expected block {gap.expected}, got {gap.got}")
        missing = await self.source.fetch_range(gap.expected, gap.got - 1)
        if len(missing) < gap.got - gap.expected:
            self._halt(
                HaltReason.SOURCE_FAILURE,
                f"Could not fetch missing blocks {gap.expected}-{gap.got - 1} "
                f"(got {len(missing)})"
            )
            return

        self.gaps_filled += 1
        for observation in missing:
            await self._ingest(observation)
            if self.is_halted:
                return
        await self._ingest(held)

    async def _recover(self, reorg: ReorgDetected, observed_height: int) -> None:
        """Handle a reorg reported by the ledger or by hash verification.

        Depth is measured from the head at which recovery began, so parent
        mismatches found while walking back add up instead of each looking
        like a one-block reorg.
        """
        peak = self._recovery_peak
        if peak is None:
            peak = self.ledger.head_height if self.ledger.head_height is not None else observed_height
            self._recovery_peak = peak

        reorg = dataclasses.replace(
            reorg, depth=max(reorg.depth, peak - reorg.at_height + 1)
        )
        self.state = PipelineState.RECOVERING

        action = self.handler.handle(reorg)
        if isinstance(action, Fatal):
            self._halt(HaltReason.UNRECOVERABLE_REORG, action.reason)
            return

        if self.window.is_confirmed(action.from_height):
            self._halt(
                HaltReason.UNRECOVERABLE_REORG,
                f"Reorg at block {action.from_height} replaces blocks whose swaps were "
                f"already emitted (confirmed up to {self.window.confirmed_up_to})"
            )
            return

        self.ledger.rewind(action.from_height)
        replacement = await self.source.fetch_range(
            action.from_height, max(peak, observed_height)
        )
        if not replacement:
            self._halt(
                HaltReason.SOURCE_FAILURE,
                f"No replacement blocks returned from block {action.from_height}"
            )
            return

        for observation in replacement:
            await self._ingest(observation)
            if self.is_halted:
                return

        if self.state is PipelineState.RECOVERING:
            self.state = PipelineState.TRACKING
            self._recovery_peak = None
            logger.info(
                f"Recovered from reorg at block {action.from_height}; "
                f"head is now {self.ledger.head_height} ({(self.ledger.head_hash or '')[:10]}...)"
            )

    async def _release(self) -> None:
        """Emit every candidate whose block just became confirmed."""
        head_height = self.ledger.head_height
        if head_height is None:
            return

        pending = self.window.pending(self.ledger, head_height)
        if not pending:
            return

        if self.confirmation.verify_confirmed_hashes:
            for record in pending:
                canonical = await self.source.canonical_hash(record.height)
                if canonical != record.hash:
                    await self._recover(
                        ReorgDetected(
                            at_height=record.height,
                            depth=head_height - record.height + 1,
                            expected_hash=record.hash,
                            observed_hash=canonical or ""
                        ),
                        head_height
                    )
                    return

        for event in self.window.advance(self.ledger, head_height):
            self.sink.emit(event)
            self.events_emitted += 1

    def _halt(self, reason: HaltReason, detail: str) -> None:
        if self.is_halted:
            return
        self.state = PipelineState.HALTED
        self.halt_reason = reason
        self.halt_detail = detail
        logger.error(f"Pipeline halted ({reason.value}): {detail}")

    def get_stats(self) -> dict[str, Any]:
        """Collect metrics from the pipeline and its components."""
        return {
            "state": self.state.value,
            "blocks_ingested": self.blocks_ingested,
            "events_emitted": self.events_emitted,
            "gaps_filled": self.gaps_filled,
            **self.ledger.get_stats(),
            **self.window.get_stats(),
            **self.handler.get_stats(),
            **self.decoder.get_metrics(),
        }

    def log_stats(self) -> None:
        stats = self.get_stats()
        logger.info(
            f"Pipeline Metrics: State={stats['state']}, "
            f"Head={stats['head_height']}, "
            f"Confirmed={stats['confirmed_up_to']}, "
            f"Emitted={stats['events_emitted']}, "
            f"Reorgs={stats['reorgs_bounded']}, "
            f"Gaps={stats['gaps_filled']}"
        )
