"""
Gateway — Интерфейсы внешних коллабораторов фонда

Ядро не реализует торговую площадку, примитив токенов или сеть оракулов.
Здесь описан минимальный интерфейс, который ядру от них нужен, и обёртки,
переводящие отказы коллабораторов в типизированные ошибки ядра.
"""

from typing import Any, Callable, Protocol, TypeVar

from navfund.core.errors import FundError, HostCallFailed, VenueCallFailed
from navfund.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FeedSource(Protocol):
    """Источник сырых байтов ценового фида."""

    def read_feed(self, asset_id: str) -> bytes:
        """Сырые данные аккаунта цены актива."""
        ...


class ExternalVenueGateway(Protocol):
    """Торговая площадка / пул ликвидности."""

    def swap(self, source_asset: str, dest_asset: str, amount: int) -> int:
        """Обмен amount единиц source_asset; возвращает полученные единицы dest_asset."""
        ...

    def add_liquidity(self, asset_a: str, asset_b: str, amount: int) -> int:
        """Внесение amount единиц asset_a в пул (a, b); возвращает полученные LP-единицы."""
        ...

    def claim_rewards(self) -> int:
        """Сбор наград пулов ликвидности; возвращает единицы резервного актива."""
        ...


class TokenMovement(Protocol):
    """Примитив перемещения токенов хоста (атомарный, с проверкой подписи)."""

    def transfer(self, source: str, dest: str, amount: int) -> None:
        ...

    def mint(self, authority: str, to: str, amount: int) -> None:
        ...

    def burn(self, source: str, amount: int) -> None:
        ...


# =============================================================================
# ОБЁРТКИ ВЫЗОВОВ
# =============================================================================


def call_venue(operation: str, fn: Callable[..., T], *args: Any, context: dict[str, Any] | None = None) -> T:
    """
    Вызов площадки; любая ошибка площадки непрозрачно становится VenueCallFailed.

    Args:
        operation: Имя операции для диагностики ("swap", "add_liquidity", ...)
        fn: Метод gateway
        context: Контекст продолжения (asset_id, amount, step_index, ...)
    """
    details = {"operation": operation}
    details.update(context or {})
    try:
        return fn(*args)
    except VenueCallFailed:
        raise
    except Exception as e:
        logger.warning("Venue %s failed: %s (%s)", operation, e, details)
        details["cause"] = repr(e)
        raise VenueCallFailed(f"venue {operation} failed: {e}", details=details) from e


def call_host(operation: str, fn: Callable[..., T], *args: Any) -> T:
    """Вызов примитива токенов хоста; ошибки вне FundError становятся HostCallFailed."""
    try:
        return fn(*args)
    except FundError:
        raise
    except Exception as e:
        logger.warning("Host %s%r failed: %s", operation, args, e)
        raise HostCallFailed(
            f"host {operation} failed: {e}",
            details={"operation": operation, "args": list(args), "cause": repr(e)},
        ) from e
