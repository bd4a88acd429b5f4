"""redis_lock テスト共通フィクスチャ"""

from __future__ import annotations

import pytest
from k1s0_redis_lock import InMemoryLockStore, LockManager, PriorityQueue

START = 1_700_000_000.0


class FakeClock:
    """sleep するたびに時間が進む決定的な時計。"""

    def __init__(self, now: float = START) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryLockStore:
    return InMemoryLockStore(clock=clock)


@pytest.fixture
def make_manager(store: InMemoryLockStore, clock: FakeClock):
    """同じストアを共有する別クライアントのハンドルを作る。"""

    def _make() -> LockManager:
        return LockManager(store, clock=clock, sleep=clock.sleep)

    return _make


@pytest.fixture
def locks(make_manager) -> LockManager:
    return make_manager()


@pytest.fixture
def queue(locks: LockManager) -> PriorityQueue:
    return PriorityQueue(locks)
