"""
Decoding of raw order book push messages.

The exchange does not use separate channels for full books and increments;
the kind of update is told apart by the shape of the message:

- a request reply (``rep``) carrying ``data`` is a full book,
- a push (``ch``) whose ``tick`` carries ``prevSeqNum`` is an increment,
- any other ``tick`` push is a full book (the depth-step channels push the
  whole aggregated book on every change).
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .models import OrderBookDelta, OrderBookSnapshot, PriceLevel

logger = logging.getLogger(__name__)

BookUpdate = Union[OrderBookSnapshot, OrderBookDelta]


def _parse_levels(raw: Optional[Iterable[Any]]) -> Tuple[PriceLevel, ...]:
    if not raw:
        return ()
    levels = []
    for entry in raw:
        try:
            price, quantity = entry[0], entry[1]
            levels.append(PriceLevel(Decimal(str(price)), Decimal(str(quantity))))
        except (IndexError, TypeError, InvalidOperation) as e:
            raise ValueError(f"Malformed price level: {entry!r}") from e
    return tuple(levels)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _symbol_from_channel(channel: str) -> str:
    # market.<symbol>.depth.step0 / market.<symbol>.mbp.150
    parts = channel.split('.')
    if len(parts) < 3 or parts[0] != 'market':
        raise ValueError(f"Unexpected channel: {channel}")
    return parts[1]


class HuobiBookDecoder:
    """Turns decoded JSON push messages into snapshots and deltas."""

    def decode(self, message: Mapping[str, Any]) -> Optional[BookUpdate]:
        """
        Decode a message.

        Args:
            message: Decoded JSON message from the push channel

        Returns:
            OrderBookSnapshot, OrderBookDelta, or None for messages that carry
            no book data (acks, heartbeats)

        Raises:
            ValueError: If the message looks like book data but is malformed
        """
        if 'rep' in message and 'data' in message:
            data = message['data']
            if not isinstance(data, Mapping):
                raise ValueError(f"Unexpected snapshot payload: {data!r}")
            return OrderBookSnapshot(
                symbol=_symbol_from_channel(message['rep']),
                timestamp=_parse_timestamp(data.get('ts', message.get('ts'))),
                bids=_parse_levels(data.get('bids')),
                asks=_parse_levels(data.get('asks')),
                sequence=data.get('seqNum')
            )

        if 'ch' in message and 'tick' in message:
            tick = message['tick']
            if not isinstance(tick, Mapping):
                raise ValueError(f"Unexpected push payload: {tick!r}")
            symbol = _symbol_from_channel(message['ch'])
            timestamp = _parse_timestamp(tick.get('ts', message.get('ts')))

            if 'prevSeqNum' in tick:
                return OrderBookDelta(
                    symbol=symbol,
                    timestamp=timestamp,
                    bids=_parse_levels(tick.get('bids')),
                    asks=_parse_levels(tick.get('asks')),
                    sequence=tick.get('seqNum'),
                    prev_sequence=tick.get('prevSeqNum')
                )

            return OrderBookSnapshot(
                symbol=symbol,
                timestamp=timestamp,
                bids=_parse_levels(tick.get('bids')),
                asks=_parse_levels(tick.get('asks')),
                sequence=tick.get('seqNum')
            )

        logger.debug("Ignoring non-book message: %s", list(message.keys()))
        return None
