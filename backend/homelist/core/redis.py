from typing import Optional
import redis.asyncio as aioredis

from homelist.core.config import settings
from homelist.core.logging import get_logger

logger = get_logger(__name__)

_pool: Optional[aioredis.ConnectionPool] = None


def _get_pool() -> aioredis.ConnectionPool:
    # 初回利用時に接続プールを作る (テストや管理コマンドでRedis不要な場合は作らない)
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
        )
    return _pool


async def get_redis() -> aioredis.Redis:
    """FastAPI依存関数: セッション用Redisクライアント"""
    return aioredis.Redis(connection_pool=_get_pool())


async def close_redis() -> None:
    """アプリ終了時に接続プールを閉じる"""
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


async def check_redis_connection() -> bool:
    """Redis接続チェック"""
    try:
        r = await get_redis()
        await r.ping()
        return True
    except aioredis.RedisError as e:
        logger.warning(f"Redis接続チェック失敗: {e}")
        return False
