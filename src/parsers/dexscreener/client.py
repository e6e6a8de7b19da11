import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from src.parsers.call_types import TokenMetrics
from src.parsers.candidates import pair_to_metrics
from src.parsers.dexscreener.models import DexScreenerPair, DexScreenerTokenProfile
from src.parsers.errors import DataFetchError
from src.parsers.throttle import RateLimiter

BASE_URL = "https://api.dexscreener.com"
MAX_RETRIES = 3
RETRY_DELAYS = [1.0, 2.0, 4.0]
BATCH_SIZE = 30
DEFAULT_MIGRATED_DEX_IDS = frozenset({"pumpswap", "raydium"})


def best_pair(pairs: list[DexScreenerPair]) -> DexScreenerPair | None:
    """Deepest-liquidity pair, or None."""
    if not pairs:
        return None
    return max(pairs, key=lambda p: p.liquidity_usd)


class DexScreenerClient:
    """Async REST client for DexScreener public API (no auth required).

    Network and HTTP failures surface as DataFetchError so callers can treat
    them as "no data this cycle".
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        max_rps: float = 1.0,
        timeout: float = 10.0,
        migrated_dex_ids: frozenset[str] | set[str] = DEFAULT_MIGRATED_DEX_IDS,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )
        self._rate_limiter = rate_limiter or RateLimiter(max_rps)
        self._migrated_dex_ids = frozenset(d.lower() for d in migrated_dex_ids)

    async def _request_with_retry(self, path: str) -> httpx.Response:
        """Execute GET with retry on 429/timeout."""
        try:
            for attempt in range(MAX_RETRIES):
                await self._rate_limiter.acquire()
                try:
                    response = await self._client.get(path)
                    if response.status_code == 429:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        retry_after = response.headers.get("Retry-After")
                        if retry_after:
                            try:
                                delay = max(float(retry_after), delay)
                            except ValueError:
                                # HTTP-date form; keep the default backoff
                                pass
                        logger.debug(f"[DEXSCREENER] 429 rate limited, retrying in {delay}s")
                        await asyncio.sleep(delay)
                        continue
                    response.raise_for_status()
                    return response
                except (httpx.TimeoutException, httpx.ConnectError) as e:
                    if attempt < MAX_RETRIES - 1:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[DEXSCREENER] {type(e).__name__}, retrying in {delay}s")
                        await asyncio.sleep(delay)
                    else:
                        raise
            # Final attempt after repeated 429s
            await self._rate_limiter.acquire()
            response = await self._client.get(path)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise DataFetchError(f"DexScreener {path}: {type(e).__name__}: {e}") from e

    async def _get_json(self, path: str) -> object:
        response = await self._request_with_retry(path)
        try:
            return response.json()
        except ValueError as e:
            raise DataFetchError(f"DexScreener {path}: invalid JSON") from e

    @staticmethod
    def _parse_pairs(data: object) -> list[DexScreenerPair]:
        if isinstance(data, dict):
            data = data.get("pairs", data.get("pair", []))
            if not isinstance(data, list):
                data = [data] if data else []
        if not isinstance(data, list):
            return []
        pairs: list[DexScreenerPair] = []
        for p in data:
            if not isinstance(p, dict):
                continue
            try:
                pairs.append(DexScreenerPair.model_validate(p))
            except ValidationError as e:
                logger.debug(
                    f"[DEXSCREENER] Skipping malformed pair {p.get('pairAddress')}: "
                    f"{e.error_count()} errors"
                )
        return pairs

    async def get_token_pairs(self, token_address: str) -> list[DexScreenerPair]:
        """Get all pairs for a token on Solana."""
        data = await self._get_json(f"/token-pairs/v1/solana/{token_address}")
        return self._parse_pairs(data)

    async def get_tokens_batch(self, addresses: list[str]) -> list[DexScreenerPair]:
        """Get pairs for up to 30 tokens in one request."""
        if not addresses:
            return []
        addr_str = ",".join(addresses[:BATCH_SIZE])
        data = await self._get_json(f"/tokens/v1/solana/{addr_str}")
        return self._parse_pairs(data)

    async def get_latest_profiles(self) -> list[DexScreenerTokenProfile]:
        """Newest token profiles across chains, newest first."""
        data = await self._get_json("/token-profiles/latest/v1")
        if not isinstance(data, list):
            return []
        profiles: list[DexScreenerTokenProfile] = []
        for p in data:
            if not isinstance(p, dict) or not p.get("tokenAddress"):
                continue
            try:
                profiles.append(DexScreenerTokenProfile.model_validate(p))
            except ValidationError as e:
                logger.debug(
                    f"[DEXSCREENER] Skipping malformed profile {p.get('tokenAddress')}: "
                    f"{e.error_count()} errors"
                )
        return profiles

    async def list_recent_listings(self, limit: int = 30) -> list[DexScreenerPair]:
        """Most recent Solana tokens that migrated to a graduated DEX pool.

        Returns one pair per token (the deepest pool), newest pool first.
        """
        profiles = await self.get_latest_profiles()
        addresses: list[str] = []
        for profile in profiles:
            if profile.chainId != "solana" or profile.tokenAddress in addresses:
                continue
            addresses.append(profile.tokenAddress)

        by_token: dict[str, list[DexScreenerPair]] = {}
        for start in range(0, len(addresses), BATCH_SIZE):
            batch = addresses[start:start + BATCH_SIZE]
            for pair in await self.get_tokens_batch(batch):
                if pair.dexId.lower() not in self._migrated_dex_ids or not pair.baseToken:
                    continue
                by_token.setdefault(pair.baseToken.address, []).append(pair)

        listings = [p for p in (best_pair(pairs) for pairs in by_token.values()) if p]
        listings.sort(key=lambda p: p.pairCreatedAt or 0, reverse=True)
        logger.debug(
            f"[DEXSCREENER] {len(profiles)} profiles -> {len(listings)} migrated listings"
        )
        return listings[:limit]

    async def get_pair_by_address(self, address: str) -> DexScreenerPair | None:
        """Deepest pair for a token mint, or None when DexScreener has none."""
        return best_pair(await self.get_token_pairs(address))

    async def get_token_metrics(self, mint: str) -> TokenMetrics | None:
        pair = await self.get_pair_by_address(mint)
        if pair is None:
            return None
        return pair_to_metrics(pair, migrated_dex_ids=self._migrated_dex_ids)

    async def close(self) -> None:
        await self._client.aclose()


KNOWN_TICKERS = {
    "SOL": "So11111111111111111111111111111111111111112",
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
}


def resolve_token_input(token: str) -> str:
    """Map a $TICKER to its mint when known; anything else is treated as a mint."""
    ticker = token.strip().lstrip("$").upper()
    return KNOWN_TICKERS.get(ticker, token.strip())
