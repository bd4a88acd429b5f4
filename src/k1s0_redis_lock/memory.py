"""InMemoryLockStore 実装"""

from __future__ import annotations

import time
from collections.abc import Callable

from .store import TTL_MISSING, TTL_NO_EXPIRY, LockStore


class _Entry:
    __slots__ = ("value", "expires_at")

    def __init__(self, value: str, expires_at: float | None = None) -> None:
        self.value = value
        self.expires_at = expires_at


class InMemoryLockStore(LockStore):
    """テスト用インメモリストア。

    失効判定は注入された clock（エポック秒）で行うため、テストでは
    時間を進めるだけで TTL 切れを再現できる。
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._values: dict[str, _Entry] = {}
        self._zsets: dict[str, dict[str, float]] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._values[key]
            return None
        return entry

    def _arm(self, key: str, expires_at: float) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        if expires_at <= self._clock():
            # Redis と同じく過去の期限は即削除
            del self._values[key]
        else:
            entry.expires_at = expires_at
        return True

    async def set_nx(self, key: str, value: int) -> bool:
        if self._live(key) is not None:
            return False
        self._values[key] = _Entry(str(value))
        return True

    async def set(self, key: str, value: int, ttl: int) -> None:
        if ttl <= 0:
            self._values.pop(key, None)
            return
        self._values[key] = _Entry(str(value), self._clock() + ttl)

    async def expire(self, key: str, seconds: int) -> bool:
        return self._arm(key, self._clock() + seconds)

    async def expire_at(self, key: str, when: int) -> bool:
        return self._arm(key, float(when))

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return TTL_MISSING
        if entry.expires_at is None:
            return TTL_NO_EXPIRY
        return int(round(entry.expires_at - self._clock()))

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return entry.value if entry is not None else None

    async def delete(self, key: str) -> bool:
        removed = self._live(key) is not None
        self._values.pop(key, None)
        if self._zsets.pop(key, None) is not None:
            removed = True
        return removed

    async def zscore(self, key: str, member: str) -> float | None:
        return self._zsets.get(key, {}).get(member)

    async def zadd(self, key: str, member: str, score: float) -> None:
        self._zsets.setdefault(key, {})[member] = float(score)

    async def zrem(self, key: str, member: str) -> bool:
        members = self._zsets.get(key)
        if members is None or member not in members:
            return False
        del members[member]
        if not members:
            del self._zsets[key]
        return True

    async def zrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        ordered = sorted(self._zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))
        size = len(ordered)
        if start < 0:
            start = max(size + start, 0)
        if stop < 0:
            stop = size + stop
        if start > stop:
            return []
        return ordered[start : stop + 1]

