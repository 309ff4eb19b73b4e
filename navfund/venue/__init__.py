"""Интерфейсы внешних коллабораторов: площадка, примитив токенов, источник фида."""

from .gateway import (
    ExternalVenueGateway,
    FeedSource,
    TokenMovement,
    call_host,
    call_venue,
)

__all__ = [
    "ExternalVenueGateway",
    "FeedSource",
    "TokenMovement",
    "call_host",
    "call_venue",
]
