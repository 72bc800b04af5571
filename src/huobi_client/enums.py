"""Enumerations used as REST parameters.

Values are the literal strings the exchange expects on the wire.
"""
from enum import Enum


class Period(str, Enum):
    """Kline interval.

    Attributes:
        ONE_MINUTE .. ONE_YEAR: candle width, serialized as '1min' .. '1year'
    """
    ONE_MINUTE = '1min'
    FIVE_MINUTES = '5min'
    FIFTEEN_MINUTES = '15min'
    THIRTY_MINUTES = '30min'
    ONE_HOUR = '60min'
    ONE_DAY = '1day'
    ONE_WEEK = '1week'
    ONE_MONTH = '1mon'
    ONE_YEAR = '1year'


class OrderType(str, Enum):
    """Order type, combining side and execution style as the exchange does."""
    LIMIT_BUY = 'buy-limit'
    LIMIT_SELL = 'sell-limit'
    MARKET_BUY = 'buy-market'
    MARKET_SELL = 'sell-market'
    IOC_BUY = 'buy-ioc'
    IOC_SELL = 'sell-ioc'

    @property
    def is_market(self) -> bool:
        return self in (OrderType.MARKET_BUY, OrderType.MARKET_SELL)


class OrderSide(str, Enum):
    """Order side."""
    BUY = 'buy'
    SELL = 'sell'


class OrderState(str, Enum):
    """Order lifecycle state."""
    PRE_SUBMITTED = 'pre-submitted'
    SUBMITTING = 'submitting'
    SUBMITTED = 'submitted'
    PARTIALLY_FILLED = 'partial-filled'
    PARTIALLY_CANCELED = 'partial-canceled'
    FILLED = 'filled'
    CANCELED = 'canceled'
