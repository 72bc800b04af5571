"""
Huobi exchange client.

REST access with signed requests, and a local order book kept in sync with
the exchange's push channel.
"""

__version__ = "0.1.0"

from .auth import ApiCredentials
from .config import (
    ClientOptions,
    LoggingConfig,
    OrderBookOptions,
    Settings,
    SocketClientOptions,
    configure_logging,
    load_settings,
)
from .enums import OrderSide, OrderState, OrderType, Period
from .exceptions import (
    ArgumentError,
    ExchangeConnectionError,
    HuobiError,
    ServerError,
    SyncTimeoutError,
    WebSocketSubscriptionError,
)
from .orderbook import BookState, OrderBookSynchronizer, PriceLevel, create_order_book
from .rest import HuobiClient
from .results import CallResult
from .websocket import HuobiSocketClient

__all__ = [
    'ApiCredentials',
    'ArgumentError',
    'BookState',
    'CallResult',
    'ClientOptions',
    'ExchangeConnectionError',
    'HuobiClient',
    'HuobiError',
    'HuobiSocketClient',
    'LoggingConfig',
    'OrderBookOptions',
    'OrderBookSynchronizer',
    'OrderSide',
    'OrderState',
    'OrderType',
    'Period',
    'PriceLevel',
    'ServerError',
    'Settings',
    'SocketClientOptions',
    'SyncTimeoutError',
    'WebSocketSubscriptionError',
    'configure_logging',
    'create_order_book',
    'load_settings',
]
