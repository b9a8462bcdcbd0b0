"""
test_pricing_source.py - Unit tests for pricing_source.py

Tests:
- feed_price conversion
- StaticPriceFeed: static prices, updates, timestamps
- TimeSeriesPriceFeed: prices as of the feed clock
"""

import pytest
from datetime import datetime, timedelta
from synthdollar import (
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    PriceSource,
    InvalidPrice,
    feed_price,
)


class TestFeedPrice:

    def test_whole_price(self):
        assert feed_price(2000) == 200000000000

    def test_fractional_price(self):
        assert feed_price("0.00000001") == 1

    def test_truncates_below_feed_precision(self):
        assert feed_price("1.000000019") == 100000001


class TestStaticPriceFeed:
    """Tests for StaticPriceFeed."""

    def test_is_price_source(self):
        assert isinstance(StaticPriceFeed({}), PriceSource)

    def test_latest_price(self):
        t = datetime(2025, 1, 1)
        feed = StaticPriceFeed({'WETH': feed_price(2000)}, updated_at=t)
        assert feed.latest_price('WETH') == (feed_price(2000), t)

    def test_unknown_asset(self):
        feed = StaticPriceFeed({'WETH': feed_price(2000)})
        with pytest.raises(InvalidPrice):
            feed.latest_price('DOGE')

    def test_update_price(self):
        feed = StaticPriceFeed({'WETH': feed_price(2000)})
        feed.update_price('WETH', feed_price(1500))
        assert feed.latest_price('WETH')[0] == feed_price(1500)

    def test_update_price_stamps_time(self):
        t0 = datetime(2025, 1, 1)
        t1 = datetime(2025, 1, 2)
        feed = StaticPriceFeed({'WETH': feed_price(2000)}, updated_at=t0)
        feed.update_price('WETH', feed_price(1500), updated_at=t1)
        assert feed.latest_price('WETH')[1] == t1

    def test_update_price_keeps_time_when_omitted(self):
        t0 = datetime(2025, 1, 1)
        feed = StaticPriceFeed({'WETH': feed_price(2000)}, updated_at=t0)
        feed.update_price('WETH', feed_price(1500))
        assert feed.latest_price('WETH')[1] == t0

    def test_update_adds_new_asset(self):
        feed = StaticPriceFeed({})
        feed.update_price('WBTC', feed_price(1000))
        assert feed.latest_price('WBTC')[0] == feed_price(1000)

    def test_does_not_alias_input(self):
        prices = {'WETH': feed_price(2000)}
        feed = StaticPriceFeed(prices)
        prices['WETH'] = 0
        assert feed.latest_price('WETH')[0] == feed_price(2000)

    def test_repr(self):
        assert 'StaticPriceFeed' in repr(StaticPriceFeed({'WETH': 1}))


class TestTimeSeriesPriceFeed:
    """Tests for TimeSeriesPriceFeed."""

    def test_create_empty_feed(self):
        feed = TimeSeriesPriceFeed()
        assert feed.price_history == {}
        assert isinstance(feed, PriceSource)

    def test_add_price(self):
        t = datetime(2025, 1, 15)
        feed = TimeSeriesPriceFeed(current_time=t)
        feed.add_price('WETH', t, feed_price(2000))
        assert feed.latest_price('WETH') == (feed_price(2000), t)

    def test_latest_at_or_before_clock(self):
        t0 = datetime(2025, 1, 1)
        feed = TimeSeriesPriceFeed({
            'WETH': [(t0, feed_price(2000)), (t0 + timedelta(days=1), feed_price(1500))],
        }, current_time=t0 + timedelta(hours=12))
        assert feed.latest_price('WETH') == (feed_price(2000), t0)

    def test_advance_time(self):
        t0 = datetime(2025, 1, 1)
        t1 = t0 + timedelta(days=1)
        feed = TimeSeriesPriceFeed({
            'WETH': [(t0, feed_price(2000)), (t1, feed_price(1500))],
        }, current_time=t0)
        feed.advance_time(t1)
        assert feed.latest_price('WETH') == (feed_price(1500), t1)

    def test_advance_time_backwards_fails(self):
        t0 = datetime(2025, 1, 2)
        feed = TimeSeriesPriceFeed(current_time=t0)
        with pytest.raises(ValueError, match="backwards"):
            feed.advance_time(t0 - timedelta(days=1))

    def test_unsorted_input_is_sorted(self):
        t0 = datetime(2025, 1, 1)
        t1 = t0 + timedelta(days=1)
        feed = TimeSeriesPriceFeed({
            'WETH': [(t1, feed_price(1500)), (t0, feed_price(2000))],
        }, current_time=t1)
        assert feed.price_history['WETH'][0] == (t0, feed_price(2000))
        assert feed.latest_price('WETH')[0] == feed_price(1500)

    def test_out_of_order_add(self):
        t0 = datetime(2025, 1, 1)
        t1 = t0 + timedelta(days=1)
        feed = TimeSeriesPriceFeed(current_time=t0)
        feed.add_price('WETH', t1, feed_price(1500))
        feed.add_price('WETH', t0, feed_price(2000))
        assert feed.latest_price('WETH')[0] == feed_price(2000)

    def test_no_history(self):
        with pytest.raises(InvalidPrice):
            TimeSeriesPriceFeed().latest_price('WETH')

    def test_nothing_before_clock(self):
        t0 = datetime(2025, 1, 1)
        feed = TimeSeriesPriceFeed({
            'WETH': [(t0 + timedelta(days=1), feed_price(2000))],
        }, current_time=t0)
        with pytest.raises(InvalidPrice):
            feed.latest_price('WETH')

    def test_empty_path_skipped(self):
        feed = TimeSeriesPriceFeed({'WETH': []})
        assert 'WETH' not in feed.price_history

    def test_repr(self):
        t0 = datetime(2025, 1, 1)
        feed = TimeSeriesPriceFeed({'WETH': [(t0, 1)]}, current_time=t0)
        assert '1 assets' in repr(feed)
        assert '1 observations' in repr(feed)
