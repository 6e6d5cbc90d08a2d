"""Redisセッション

session:{id} にユーザーIDとログイン時のロールを保存する。
ロールが変わったユーザーのセッションは get_current_user 側で破棄される。
"""
import secrets
import time
from typing import Optional
import redis.asyncio as aioredis

from homelist.core.config import settings

SESSION_PREFIX = "session:"


def _ttl() -> int:
    return settings.SESSION_TIMEOUT_MINUTES * 60


async def create_session(r: aioredis.Redis, user_id: int, role: str) -> str:
    """セッション作成。session_idを返す"""
    session_id = secrets.token_hex(32)
    key = f"{SESSION_PREFIX}{session_id}"

    async with r.pipeline(transaction=True) as pipe:
        pipe.hset(key, mapping={
            "user_id": str(user_id),
            "role": role,
            "created_at": str(int(time.time())),
        })
        pipe.expire(key, _ttl())
        await pipe.execute()
    return session_id


async def get_session(r: aioredis.Redis, session_id: Optional[str]) -> Optional[dict]:
    """セッション取得。アクセスごとにTTLを延長"""
    if not session_id:
        return None
    key = f"{SESSION_PREFIX}{session_id}"
    data = await r.hgetall(key)
    if not data:
        return None
    await r.expire(key, _ttl())
    return data


async def destroy_session(r: aioredis.Redis, session_id: Optional[str]) -> None:
    if session_id:
        await r.delete(f"{SESSION_PREFIX}{session_id}")
