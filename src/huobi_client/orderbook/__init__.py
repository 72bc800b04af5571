"""Local order book synchronization."""

from .book_side import BookSide
from .decoder import HuobiBookDecoder
from .models import BookState, OrderBookDelta, OrderBookSnapshot, PriceLevel
from .synchronizer import (
    OrderBookSource,
    OrderBookSynchronizer,
    SubscriptionHandle,
    create_order_book,
)

__all__ = [
    'BookSide',
    'BookState',
    'HuobiBookDecoder',
    'OrderBookDelta',
    'OrderBookSnapshot',
    'OrderBookSource',
    'OrderBookSynchronizer',
    'PriceLevel',
    'SubscriptionHandle',
    'create_order_book',
]
