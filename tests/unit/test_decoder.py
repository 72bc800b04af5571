"""Tests for order book message decoding."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from huobi_client.orderbook.decoder import HuobiBookDecoder
from huobi_client.orderbook.models import OrderBookDelta, OrderBookSnapshot, PriceLevel


@pytest.fixture
def decoder():
    return HuobiBookDecoder()


class TestHuobiBookDecoder:

    def test_depth_push_is_snapshot(self, decoder):
        message = {
            'ch': 'market.ethbtc.depth.step0',
            'ts': 1546300800000,
            'tick': {
                'bids': [[Decimal('0.031'), Decimal('1.5')]],
                'asks': [[Decimal('0.032'), Decimal('2')]],
                'version': 100,
                'ts': 1546300800000,
            },
        }

        update = decoder.decode(message)

        assert isinstance(update, OrderBookSnapshot)
        assert update.symbol == 'ethbtc'
        assert update.bids == (PriceLevel(Decimal('0.031'), Decimal('1.5')),)
        assert update.asks == (PriceLevel(Decimal('0.032'), Decimal('2')),)
        assert update.timestamp == datetime(2019, 1, 1, tzinfo=timezone.utc)
        assert update.sequence is None

    def test_request_reply_is_snapshot(self, decoder):
        message = {
            'id': '1',
            'rep': 'market.btcusdt.mbp.150',
            'status': 'ok',
            'data': {'seqNum': 100, 'bids': [[9000, 1]], 'asks': [[9001, 1]]},
        }

        update = decoder.decode(message)

        assert isinstance(update, OrderBookSnapshot)
        assert update.symbol == 'btcusdt'
        assert update.sequence == 100
        assert update.timestamp is None

    def test_incremental_push_is_delta(self, decoder):
        message = {
            'ch': 'market.btcusdt.mbp.150',
            'ts': 1546300800000,
            'tick': {'seqNum': 101, 'prevSeqNum': 100, 'bids': [[9000, 0]], 'asks': []},
        }

        update = decoder.decode(message)

        assert isinstance(update, OrderBookDelta)
        assert update.sequence == 101
        assert update.prev_sequence == 100
        assert update.bids == (PriceLevel(Decimal(9000), Decimal(0)),)
        assert update.asks == ()

    def test_float_levels_are_exact(self, decoder):
        message = {'ch': 'market.ethbtc.depth.step0', 'tick': {'bids': [[0.1, 0.3]], 'asks': []}}
        assert decoder.decode(message).bids[0] == PriceLevel(Decimal('0.1'), Decimal('0.3'))

    @pytest.mark.parametrize('message', [
        {'ping': 1},
        {'id': '1', 'status': 'ok', 'subbed': 'market.ethbtc.depth.step0'},
        {'ch': 'market.ethbtc.depth.step0'},
    ])
    def test_non_book_messages(self, decoder, message):
        assert decoder.decode(message) is None

    @pytest.mark.parametrize('message', [
        {'ch': 'market.ethbtc.depth.step0', 'tick': {'bids': [[1]], 'asks': []}},
        {'ch': 'market.ethbtc.depth.step0', 'tick': {'bids': [['x', 1]], 'asks': []}},
        {'ch': 'weird', 'tick': {'bids': [], 'asks': []}},
        {'rep': 'market.ethbtc.depth.step0', 'data': None},
    ])
    def test_malformed_messages(self, decoder, message):
        with pytest.raises(ValueError):
            decoder.decode(message)
