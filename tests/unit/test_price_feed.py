"""
Tests для PriceOracleAdapter

Формат записи: 8 байт little-endian price + 8 байт little-endian timestamp.
"""

import pytest

from navfund.core.config import OracleConfig
from navfund.core.errors import ExternalError, StaleOrMalformedFeed
from navfund.oracle.price_feed import (
    PRICE_RECORD_LENGTH,
    PriceOracleAdapter,
    decode_price_record,
    encode_price_record,
)
from tests.fakes import NOW, FakeFeedSource, fixed_clock


@pytest.fixture
def feed():
    return FakeFeedSource({"SOL": 150, "X": 2})


@pytest.fixture
def oracle(feed):
    return PriceOracleAdapter(feed, OracleConfig(max_age_sec=60, max_future_skew_sec=5), clock=fixed_clock)


class TestPriceRecord:
    """Тесты кодека записи"""

    def test_decode_little_endian(self) -> None:
        data = (2).to_bytes(8, "little") + (NOW).to_bytes(8, "little")
        assert decode_price_record(data) == (2, NOW)

    def test_record_length(self) -> None:
        assert PRICE_RECORD_LENGTH == 16
        assert len(encode_price_record(1, NOW)) == 16

    def test_trailing_bytes_ignored(self) -> None:
        data = encode_price_record(7, NOW) + b"\xff" * 8
        assert decode_price_record(data) == (7, NOW)

    def test_short_buffer_rejected(self) -> None:
        with pytest.raises(StaleOrMalformedFeed) as exc_info:
            decode_price_record(b"\x01" * 15)
        assert exc_info.value.details["length"] == 15


class TestPriceOracleAdapter:
    """Тесты проверок свежести и формата"""

    def test_fresh_price(self, oracle) -> None:
        quote = oracle.get_price("X")
        assert quote.asset_id == "X"
        assert quote.price == 2
        assert quote.as_of == NOW

    def test_age_at_limit_accepted(self, feed, oracle) -> None:
        feed.set_price("X", 3, as_of=NOW - 60)
        assert oracle.get_price("X").price == 3

    def test_stale_price_rejected(self, feed, oracle) -> None:
        feed.set_price("X", 3, as_of=NOW - 61)
        with pytest.raises(StaleOrMalformedFeed) as exc_info:
            oracle.get_price("X")
        assert exc_info.value.details["asset_id"] == "X"

    def test_future_timestamp_rejected(self, feed, oracle) -> None:
        feed.set_price("X", 3, as_of=NOW + 6)
        with pytest.raises(StaleOrMalformedFeed):
            oracle.get_price("X")

    def test_small_future_skew_accepted(self, feed, oracle) -> None:
        feed.set_price("X", 3, as_of=NOW + 5)
        assert oracle.get_price("X").price == 3

    def test_zero_price_rejected(self, feed, oracle) -> None:
        """Нулевая цена никогда не используется как значение по умолчанию"""
        feed.set_price("X", 0)
        with pytest.raises(StaleOrMalformedFeed):
            oracle.get_price("X")

    def test_malformed_record_carries_asset(self, feed, oracle) -> None:
        feed.set_raw("X", b"\x00" * 8)
        with pytest.raises(StaleOrMalformedFeed) as exc_info:
            oracle.get_price("X")
        assert exc_info.value.details["asset_id"] == "X"

    def test_unreadable_feed(self, oracle) -> None:
        with pytest.raises(StaleOrMalformedFeed) as exc_info:
            oracle.get_price("UNKNOWN")
        assert isinstance(exc_info.value, ExternalError)
        assert "cause" in exc_info.value.details
