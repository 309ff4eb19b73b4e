"""
PriceFeed — Адаптер ценового оракула

Преобразует сырые байты внешнего фида в PriceQuote(price, as_of).

Формат записи (фиксированная ширина, little-endian):
    bytes 0..8   — u64 цена (стоимость одной базовой единицы актива)
    bytes 8..16  — u64 timestamp (unix, секунды)
Байты после 16-го игнорируются.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Короткий буфер, нулевая цена, устаревший или «будущий» timestamp →
   StaleOrMalformedFeed
2. Значение по умолчанию (ноль, последняя известная цена) никогда
   не подставляется: отказ пробрасывается во все зависимые вычисления
3. Адаптер — чистая функция внешнего состояния, без мутаций
"""

import struct
import time
from typing import Callable, Final

from navfund.core.config import OracleConfig
from navfund.core.domain.fund_state import PriceQuote
from navfund.core.errors import StaleOrMalformedFeed
from navfund.core.logger import get_logger
from navfund.venue.gateway import FeedSource

logger = get_logger(__name__)

# =============================================================================
# ФОРМАТ ЗАПИСИ
# =============================================================================

_RECORD: Final[struct.Struct] = struct.Struct("<QQ")

PRICE_RECORD_LENGTH: Final[int] = _RECORD.size  # 16


def decode_price_record(data: bytes) -> tuple[int, int]:
    """
    Декодирование записи фида.

    Args:
        data: Сырые байты аккаунта цены

    Returns:
        (price, timestamp)

    Raises:
        StaleOrMalformedFeed: Если буфер короче PRICE_RECORD_LENGTH

    Examples:
        >>> decode_price_record((2).to_bytes(8, "little") + (1700000000).to_bytes(8, "little"))
        (2, 1700000000)
    """
    if len(data) < PRICE_RECORD_LENGTH:
        raise StaleOrMalformedFeed(
            f"price record is {len(data)} bytes, expected {PRICE_RECORD_LENGTH}",
            details={"length": len(data)},
        )
    price, timestamp = _RECORD.unpack_from(data, 0)
    return price, timestamp


def encode_price_record(price: int, timestamp: int) -> bytes:
    """Обратное преобразование; используется источниками фида и тестами."""
    return _RECORD.pack(price, timestamp)


# =============================================================================
# ADAPTER
# =============================================================================


class PriceOracleAdapter:
    """
    Адаптер оракула: FeedSource → проверенная PriceQuote.

    Проверки:
    1. Длина записи >= 16 байт
    2. price > 0
    3. now - as_of <= max_age_sec
    4. as_of - now <= max_future_skew_sec
    """

    def __init__(
        self,
        source: FeedSource,
        config: OracleConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            source: источник сырых байтов фида
            config: границы свежести (опционально, используется default)
            clock: текущее время в unix-секундах
        """
        self.source = source
        self.config = config or OracleConfig()
        self._clock = clock

    def get_price(self, asset_id: str) -> PriceQuote:
        """
        Текущая цена актива.

        Raises:
            StaleOrMalformedFeed: Запись короткая, цена нулевая или timestamp
                вне окна свежести
        """
        try:
            data = self.source.read_feed(asset_id)
        except StaleOrMalformedFeed:
            raise
        except Exception as e:
            raise StaleOrMalformedFeed(
                f"cannot read price feed for {asset_id}: {e}",
                details={"asset_id": asset_id, "cause": repr(e)},
            ) from e

        try:
            price, as_of = decode_price_record(data)
        except StaleOrMalformedFeed as e:
            e.details["asset_id"] = asset_id
            raise

        if price == 0:
            raise StaleOrMalformedFeed(
                f"zero price for {asset_id}",
                details={"asset_id": asset_id, "as_of": as_of},
            )

        now = int(self._clock())
        age = now - as_of
        if age > self.config.max_age_sec:
            logger.warning("Stale price for %s: age=%ss max=%ss", asset_id, age, self.config.max_age_sec)
            raise StaleOrMalformedFeed(
                f"price for {asset_id} is {age}s old",
                details={"asset_id": asset_id, "as_of": as_of, "now": now, "max_age_sec": self.config.max_age_sec},
            )
        if -age > self.config.max_future_skew_sec:
            raise StaleOrMalformedFeed(
                f"price for {asset_id} is timestamped {-age}s in the future",
                details={"asset_id": asset_id, "as_of": as_of, "now": now},
            )

        return PriceQuote(asset_id=asset_id, price=price, as_of=as_of)
