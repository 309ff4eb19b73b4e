"""
In-memory коллабораторы для тестов: источник фида, площадка, примитив токенов.
"""

from navfund.core.config import FundConfig
from navfund.core.domain.fund_state import ShareSupply
from navfund.core.domain.holding import AssetHolding
from navfund.fund import FundEngine
from navfund.oracle.price_feed import decode_price_record, encode_price_record

NOW = 1_700_000_000

OWNER = "owner"
FUND_ACCOUNT = "fund"
RESERVE = "SOL"


def fixed_clock() -> float:
    return float(NOW)


class FakeFeedSource:
    """Записи фида в памяти; отсутствующий актив — ошибка чтения."""

    def __init__(self, prices: dict[str, int] | None = None, as_of: int = NOW):
        self.records: dict[str, bytes] = {}
        for asset_id, price in (prices or {}).items():
            self.set_price(asset_id, price, as_of)

    def set_price(self, asset_id: str, price: int, as_of: int = NOW) -> None:
        self.records[asset_id] = encode_price_record(price, as_of)

    def set_raw(self, asset_id: str, data: bytes) -> None:
        self.records[asset_id] = data

    def price(self, asset_id: str) -> int:
        return decode_price_record(self.records[asset_id])[0]

    def read_feed(self, asset_id: str) -> bytes:
        if asset_id not in self.records:
            raise KeyError(f"no feed account for {asset_id}")
        return self.records[asset_id]


class FakeVenue:
    """
    Площадка, исполняющая сделки по цене фида.

    slippage_bps — потеря на каждой сделке; fail_assets — активы,
    сделки с которыми падают.
    """

    def __init__(self, feed: FakeFeedSource):
        self.feed = feed
        self.calls: list[tuple] = []
        self.slippage_bps = 0
        self.fail_assets: set[str] = set()
        self.pools: dict[tuple[str, str], str] = {}
        self.rewards = 0

    def swap(self, source_asset: str, dest_asset: str, amount: int) -> int:
        self._enter("swap", source_asset, dest_asset, amount)
        received = amount * self.feed.price(source_asset) // self.feed.price(dest_asset)
        return self._slipped(received)

    def add_liquidity(self, asset_a: str, asset_b: str, amount: int) -> int:
        self._enter("add_liquidity", asset_a, asset_b, amount)
        lp_asset = self.pools[(asset_a, asset_b)]
        received = amount * self.feed.price(asset_a) // self.feed.price(lp_asset)
        return self._slipped(received)

    def claim_rewards(self) -> int:
        self._enter("claim_rewards")
        return self.rewards

    def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if self.fail_assets.intersection(a for a in args if isinstance(a, str)):
            raise RuntimeError(f"{operation} rejected by venue")

    def _slipped(self, received: int) -> int:
        return received - received * self.slippage_bps // 10_000


class FakeTokens:
    """Примитив токенов хоста, записывающий все вызовы."""

    def __init__(self):
        self.transfers: list[tuple[str, str, int]] = []
        self.mints: list[tuple[str, str, int]] = []
        self.burns: list[tuple[str, int]] = []
        self.fail_operation: str | None = None

    def transfer(self, source: str, dest: str, amount: int) -> None:
        self._check("transfer")
        self.transfers.append((source, dest, amount))

    def mint(self, authority: str, to: str, amount: int) -> None:
        self._check("mint")
        self.mints.append((authority, to, amount))

    def burn(self, source: str, amount: int) -> None:
        self._check("burn")
        self.burns.append((source, amount))

    def _check(self, operation: str) -> None:
        if self.fail_operation == operation:
            raise RuntimeError(f"host rejected {operation}")


def make_config(**overrides) -> FundConfig:
    params = {"owner": OWNER, "fund_account": FUND_ACCOUNT, "reserve_asset_id": RESERVE}
    params.update(overrides)
    return FundConfig(**params)


def make_fund(
    prices: dict[str, int],
    holdings: dict[str, int] | None = None,
    liquid_reserve: int = 0,
    config: FundConfig | None = None,
    policy: dict | None = None,
    total_shares: int = 0,
) -> tuple[FundEngine, FakeFeedSource, FakeVenue, FakeTokens]:
    """Фонд на in-memory коллабораторах; policy применяется от имени владельца."""
    feed = FakeFeedSource(prices)
    venue = FakeVenue(feed)
    tokens = FakeTokens()
    fund = FundEngine(
        config or make_config(),
        feed,
        venue,
        tokens,
        holdings=[AssetHolding(asset_id=a, balance=b) for a, b in (holdings or {}).items()],
        liquid_reserve=liquid_reserve,
        supply=ShareSupply(total_shares=total_shares),
        clock=fixed_clock,
    )
    if policy is not None:
        fund.update_policy(OWNER, policy)
    return fund, feed, venue, tokens
