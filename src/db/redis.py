"""Optional Redis pub/sub of posted calls for external consumers."""

import json

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from config.settings import settings
from src.parsers.call_types import CallCard

CALLS_CHANNEL = "callcaster:calls"

_redis_client: Redis | None = None


async def get_redis() -> Redis | None:
    """Shared client, or None when no REDIS_URL is configured."""
    global _redis_client
    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class CallPublisher:
    """Publishes one JSON message per delivered call. Failures are logged only."""

    def __init__(self, redis: Redis, channel: str = CALLS_CHANNEL) -> None:
        self._redis = redis
        self._channel = channel

    async def publish_call(self, guild_id: str, channel_id: str, card: CallCard) -> None:
        payload = json.dumps({
            "guild_id": guild_id,
            "channel_id": channel_id,
            "call_id": card.call_id,
            "mint": card.token.mint,
            "symbol": card.token.symbol,
            "confidence": card.confidence,
            "price": card.metrics.price,
            "policy": card.policy.name,
            "ts": card.timestamp.isoformat(),
        })
        try:
            await self._redis.publish(self._channel, payload)
        except (RedisError, OSError) as e:
            logger.debug(f"[AUTOPOST] Redis publish failed: {e}")
