"""SOL/USD reference price with a TTL cache and a hardcoded fallback.

The price is looked up through the market-data provider (the deepest
WSOL pair) at most once per ``ttl_sec``. When no price has ever been
fetched and the lookup fails, ``fallback_usd`` is used.
"""

import time
from collections.abc import Callable
from typing import Protocol

from loguru import logger

from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.errors import DataFetchError

# Wrapped SOL mint
WSOL_MINT = "So11111111111111111111111111111111111111112"


class PairLookup(Protocol):
    async def get_pair_by_address(self, address: str) -> DexScreenerPair | None: ...


class SolPriceCache:
    def __init__(
        self,
        provider: PairLookup,
        *,
        ttl_sec: float = 300.0,
        fallback_usd: float = 150.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._ttl = ttl_sec
        self._fallback = fallback_usd
        self._clock = clock
        self._price: float | None = None
        self._fetched_at: float = 0.0

    @property
    def cached(self) -> float | None:
        return self._price

    async def get_price(self) -> float:
        now = self._clock()
        if self._price is not None and now - self._fetched_at < self._ttl:
            return self._price

        try:
            pair = await self._provider.get_pair_by_address(WSOL_MINT)
        except DataFetchError as e:
            logger.debug(f"[SOL_PRICE] Lookup failed: {e}")
            pair = None

        price = pair.price_usd if pair else 0.0
        if price > 0:
            self._price = price
            self._fetched_at = now
            logger.debug(f"[SOL_PRICE] Updated: ${price:.2f}")
            return price

        if self._price is not None:
            logger.debug(f"[SOL_PRICE] No update, using cached: ${self._price:.2f}")
            return self._price
        return self._fallback
