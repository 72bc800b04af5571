"""Order book data structures."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class BookState(str, Enum):
    """Synchronization state of a local order book.

    Attributes:
        DISCONNECTED: Not started
        AWAITING_SNAPSHOT: Subscribed, waiting for the first snapshot
        BUFFERING: Deltas are arriving and being held until the snapshot is installed
        SYNCED: Snapshot installed, deltas applied as they arrive
        RESYNCING: A consistency problem was detected; a new snapshot is being fetched
        FAULTED: Start or resync failed; the book is not usable until resynced
        DISPOSED: Terminal; the subscription is released and the book cleared
    """
    DISCONNECTED = 'disconnected'
    AWAITING_SNAPSHOT = 'awaiting_snapshot'
    BUFFERING = 'buffering'
    SYNCED = 'synced'
    RESYNCING = 'resyncing'
    FAULTED = 'faulted'
    DISPOSED = 'disposed'


@dataclass(frozen=True)
class PriceLevel:
    """A price and the quantity resting at it. A zero quantity removes the level."""
    price: Decimal
    quantity: Decimal


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Complete view of both sides; replaces the local book when installed."""
    symbol: str
    timestamp: Optional[datetime]
    bids: Tuple[PriceLevel, ...] = field(default_factory=tuple)
    asks: Tuple[PriceLevel, ...] = field(default_factory=tuple)
    sequence: Optional[int] = None


@dataclass(frozen=True)
class OrderBookDelta:
    """Incremental upserts and removals.

    Attributes:
        sequence: Update marker of this delta, when the channel provides one
        prev_sequence: Marker of the update this delta follows
    """
    symbol: str
    timestamp: Optional[datetime]
    bids: Tuple[PriceLevel, ...] = field(default_factory=tuple)
    asks: Tuple[PriceLevel, ...] = field(default_factory=tuple)
    sequence: Optional[int] = None
    prev_sequence: Optional[int] = None
