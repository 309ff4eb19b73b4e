"""Ценовой оракул: декодирование фида и проверка свежести."""

from .price_feed import (
    PRICE_RECORD_LENGTH,
    PriceOracleAdapter,
    decode_price_record,
    encode_price_record,
)

__all__ = [
    "PRICE_RECORD_LENGTH",
    "PriceOracleAdapter",
    "decode_price_record",
    "encode_price_record",
]
