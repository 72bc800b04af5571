"""One side of a local order book."""
from bisect import bisect_left, insort
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional

from .models import PriceLevel


class BookSide:
    """
    Price ladder with unique prices, kept sorted after every mutation.

    Bids are ordered best (highest) first, asks best (lowest) first. Not
    thread-safe; the owning synchronizer serializes access.
    """

    def __init__(self, descending: bool):
        self.descending = descending
        self._levels: Dict[Decimal, Decimal] = {}
        self._prices: List[Decimal] = []  # always ascending

    def __len__(self) -> int:
        return len(self._prices)

    def __iter__(self) -> Iterator[PriceLevel]:
        prices = reversed(self._prices) if self.descending else iter(self._prices)
        for price in prices:
            yield PriceLevel(price, self._levels[price])

    def __contains__(self, price: Decimal) -> bool:
        return price in self._levels

    def get(self, price: Decimal) -> Optional[Decimal]:
        return self._levels.get(price)

    def best(self) -> Optional[PriceLevel]:
        """Top of this side, or None when empty."""
        if not self._prices:
            return None
        price = self._prices[-1] if self.descending else self._prices[0]
        return PriceLevel(price, self._levels[price])

    def apply(self, level: PriceLevel) -> None:
        """Upsert a level, or remove it when its quantity is zero."""
        if level.quantity == 0:
            if self._levels.pop(level.price, None) is not None:
                del self._prices[bisect_left(self._prices, level.price)]
            return

        if level.price not in self._levels:
            insort(self._prices, level.price)
        self._levels[level.price] = level.quantity

    def replace(self, levels: Iterable[PriceLevel]) -> None:
        """Replace the whole side. Zero-quantity levels are ignored."""
        self._levels = {level.price: level.quantity for level in levels if level.quantity != 0}
        self._prices = sorted(self._levels)

    def clear(self) -> None:
        self._levels.clear()
        self._prices.clear()

    def levels(self, depth: Optional[int] = None) -> List[PriceLevel]:
        """Copy of the side, best first, optionally truncated to `depth` levels."""
        result = list(self)
        return result if depth is None else result[:depth]
