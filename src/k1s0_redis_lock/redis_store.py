"""Redis (redis.asyncio) による LockStore 実装"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import RedisSection
from .exceptions import LockError, LockErrorCodes
from .store import LockStore

T = TypeVar("T")


def _decode(value: str | bytes | None) -> str | None:
    # decode_responses=False のクライアントは bytes を返す
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisLockStore(LockStore):
    """redis.asyncio クライアントを使う LockStore。

    クライアント（接続プール）の所有者は呼び出し側で、close() で解放する。
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: RedisSection) -> RedisLockStore:
        """設定から接続プールを作成してストアを返す。

        プールが枯渇した場合は pool_timeout 秒まで待ってからエラーになる。
        """
        pool = aioredis.BlockingConnectionPool(
            host=settings.host,
            port=settings.port,
            db=settings.db,
            password=settings.password or None,
            max_connections=settings.max_connections,
            timeout=settings.pool_timeout,
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.socket_connect_timeout,
            health_check_interval=settings.health_check_interval,
            decode_responses=True,
        )
        return cls(aioredis.Redis.from_pool(pool))

    async def _call(self, op: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as e:
            raise LockError(
                code=LockErrorCodes.STORE_ERROR,
                message=f"Redis {op} failed for {key}: {e}",
                cause=e,
            ) from e

    async def set_nx(self, key: str, value: int) -> bool:
        return bool(await self._call("SETNX", key, self._client.setnx(key, value)))

    async def set(self, key: str, value: int, ttl: int) -> None:
        if ttl <= 0:
            await self._call("DEL", key, self._client.delete(key))
            return
        await self._call("SET", key, self._client.set(key, value, ex=ttl))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._call("EXPIRE", key, self._client.expire(key, seconds)))

    async def expire_at(self, key: str, when: int) -> bool:
        return bool(await self._call("EXPIREAT", key, self._client.expireat(key, when)))

    async def ttl(self, key: str) -> int:
        return int(await self._call("TTL", key, self._client.ttl(key)))

    async def get(self, key: str) -> str | None:
        return _decode(await self._call("GET", key, self._client.get(key)))

    async def delete(self, key: str) -> bool:
        return bool(await self._call("DEL", key, self._client.delete(key)))

    async def zscore(self, key: str, member: str) -> float | None:
        return await self._call("ZSCORE", key, self._client.zscore(key, member))

    async def zadd(self, key: str, member: str, score: float) -> None:
        await self._call("ZADD", key, self._client.zadd(key, {member: score}))

    async def zrem(self, key: str, member: str) -> bool:
        return bool(await self._call("ZREM", key, self._client.zrem(key, member)))

    async def zrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        rows = await self._call(
            "ZRANGE", key, self._client.zrange(key, start, stop, withscores=True)
        )
        return [(_decode(member), float(score)) for member, score in rows]

    async def close(self) -> None:
        await self._client.aclose()
