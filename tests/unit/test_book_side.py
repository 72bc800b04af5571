"""Tests for the sorted price ladder."""
import random
from decimal import Decimal

from huobi_client.orderbook.book_side import BookSide
from huobi_client.orderbook.models import PriceLevel


def level(price, quantity):
    return PriceLevel(Decimal(str(price)), Decimal(str(quantity)))


class TestBookSide:

    def test_bids_descending(self):
        side = BookSide(descending=True)
        for price in (100, 102, 101):
            side.apply(level(price, 1))

        assert [lvl.price for lvl in side] == [Decimal(102), Decimal(101), Decimal(100)]
        assert side.best() == level(102, 1)

    def test_asks_ascending(self):
        side = BookSide(descending=False)
        for price in (101, 99, 100):
            side.apply(level(price, 1))

        assert [lvl.price for lvl in side] == [Decimal(99), Decimal(100), Decimal(101)]
        assert side.best() == level(99, 1)

    def test_upsert_replaces_quantity(self):
        side = BookSide(descending=False)
        side.apply(level(100, 1))
        side.apply(level(100, 3))

        assert len(side) == 1
        assert side.get(Decimal(100)) == Decimal(3)

    def test_zero_quantity_removes(self):
        side = BookSide(descending=False)
        side.apply(level(100, 1))
        side.apply(level(100, 0))
        side.apply(level(105, 0))  # unknown price

        assert len(side) == 0
        assert side.best() is None

    def test_replace_drops_zero_levels(self):
        side = BookSide(descending=True)
        side.apply(level(1, 1))
        side.replace([level(3, 1), level(2, 0), level(4, 2)])

        assert side.levels() == [level(4, 2), level(3, 1)]
        assert Decimal(1) not in side

    def test_levels_depth(self):
        side = BookSide(descending=False)
        for price in range(10):
            side.apply(level(price, 1))
        assert [lvl.price for lvl in side.levels(3)] == [Decimal(0), Decimal(1), Decimal(2)]

    def test_sorted_invariant_under_random_updates(self):
        rng = random.Random(42)
        for descending in (True, False):
            side = BookSide(descending=descending)
            reference = {}
            for _ in range(2000):
                price = Decimal(rng.randint(1, 60)) / 4
                quantity = Decimal(rng.choice([0, 0, 1, 2, 5]))
                side.apply(PriceLevel(price, quantity))
                if quantity == 0:
                    reference.pop(price, None)
                else:
                    reference[price] = quantity

                prices = [lvl.price for lvl in side]
                expected = sorted(prices, reverse=descending)
                assert prices == expected
                assert len(set(prices)) == len(prices)

            assert {lvl.price: lvl.quantity for lvl in side} == reference
