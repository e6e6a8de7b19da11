from decimal import Decimal

from pydantic import BaseModel


class DexScreenerToken(BaseModel):
    address: str
    name: str | None = None
    symbol: str | None = None

    model_config = {"extra": "ignore"}


class DexScreenerVolume(BaseModel):
    m5: Decimal | None = None
    h1: Decimal | None = None
    h6: Decimal | None = None
    h24: Decimal | None = None

    model_config = {"extra": "ignore"}


class DexScreenerPriceChange(BaseModel):
    m5: float | None = None
    h1: float | None = None
    h6: float | None = None
    h24: float | None = None

    model_config = {"extra": "ignore"}


class DexScreenerLiquidity(BaseModel):
    usd: Decimal | None = None
    base: Decimal | None = None
    quote: Decimal | None = None

    model_config = {"extra": "ignore"}


class DexScreenerTxns(BaseModel):
    buys: int | None = None
    sells: int | None = None

    model_config = {"extra": "ignore"}


class DexScreenerTxnsByPeriod(BaseModel):
    m5: DexScreenerTxns | None = None
    h1: DexScreenerTxns | None = None
    h6: DexScreenerTxns | None = None
    h24: DexScreenerTxns | None = None

    model_config = {"extra": "ignore"}


class DexScreenerSocial(BaseModel):
    type: str | None = None
    url: str | None = None

    model_config = {"extra": "ignore"}


class DexScreenerWebsite(BaseModel):
    label: str | None = None
    url: str | None = None

    model_config = {"extra": "ignore"}


class DexScreenerInfo(BaseModel):
    imageUrl: str | None = None
    socials: list[DexScreenerSocial] = []
    websites: list[DexScreenerWebsite] = []

    model_config = {"extra": "ignore"}


class DexScreenerPair(BaseModel):
    chainId: str = ""
    dexId: str = ""
    url: str = ""
    pairAddress: str = ""
    baseToken: DexScreenerToken | None = None
    quoteToken: DexScreenerToken | None = None
    priceUsd: str | None = None
    priceChange: DexScreenerPriceChange | None = None
    volume: DexScreenerVolume | None = None
    liquidity: DexScreenerLiquidity | None = None
    fdv: Decimal | None = None
    marketCap: Decimal | None = None
    pairCreatedAt: int | None = None  # epoch ms
    txns: DexScreenerTxnsByPeriod | None = None
    info: DexScreenerInfo | None = None

    model_config = {"extra": "ignore"}

    @property
    def price_usd(self) -> float:
        try:
            return float(self.priceUsd) if self.priceUsd else 0.0
        except ValueError:
            return 0.0

    @property
    def liquidity_usd(self) -> float:
        return float(self.liquidity.usd or 0) if self.liquidity else 0.0

    def volume_at(self, period: str) -> float:
        if not self.volume:
            return 0.0
        return float(getattr(self.volume, period) or 0)

    def price_change_at(self, period: str) -> float:
        if not self.priceChange:
            return 0.0
        return float(getattr(self.priceChange, period) or 0)

    def txns_at(self, period: str) -> tuple[int, int]:
        """(buys, sells) for a window; zeros when the window is missing."""
        window = getattr(self.txns, period, None) if self.txns else None
        if window is None:
            return 0, 0
        return window.buys or 0, window.sells or 0

    def buy_sell_ratio(self, period: str = "m5") -> float:
        buys, sells = self.txns_at(period)
        if sells > 0:
            return buys / sells
        return float("inf") if buys > 0 else 0.0


class DexScreenerTokenProfile(BaseModel):
    """Entry of /token-profiles/latest/v1: newest profiles first."""

    chainId: str = ""
    tokenAddress: str
    url: str | None = None
    icon: str | None = None
    description: str | None = None

    model_config = {"extra": "ignore"}
