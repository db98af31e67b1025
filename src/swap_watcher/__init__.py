"""
Swap Watcher package.

Follows a Uniswap V3 DAI/USDC pool and emits its swaps once their block is
confirmed, recovering from shallow chain reorganisations and halting on deep ones.
"""

from .config import WatcherConfig
from .event_decoder import SwapDecoder
from .models import SwapDirection, SwapEvent
from .pipeline import ConfirmationPipeline
from .watcher import SwapWatcher

__all__ = ["WatcherConfig", "SwapWatcher", "ConfirmationPipeline", "SwapDecoder", "SwapEvent", "SwapDirection"]
__version__ = "0.1.0"
