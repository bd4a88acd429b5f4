"""ロックで直列化された優先度付きタスクキュー"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from .config import QueueSection
from .exceptions import LockError
from .lock import LockManager
from .models import EnqueueResult, OperationResult, QueueEntry, Status

logger = structlog.stdlib.get_logger(__name__)


class PriorityQueue:
    """ソート済みセット上の優先度付きキュー。

    スコアはエポック秒（エンキュー時刻 + 遅延）で、小さいものほど先に取り出される。
    すべての操作はロック ``key_prefix + name`` を取得してからセットに触れ、
    戻る前に必ず解放する。
    """

    def __init__(
        self,
        locks: LockManager,
        *,
        lock_expire: int = 15,
        poll_interval_us: int = 10_000,
        key_prefix: str = "Queue:",
    ) -> None:
        self._locks = locks
        self._lock_expire = lock_expire
        self._poll_interval_us = poll_interval_us
        self._key_prefix = key_prefix

    @classmethod
    def from_settings(cls, locks: LockManager, settings: QueueSection) -> PriorityQueue:
        return cls(
            locks,
            lock_expire=settings.lock_expire,
            poll_interval_us=settings.poll_interval_us,
            key_prefix=settings.key_prefix,
        )

    def _key(self, name: str) -> str:
        return self._key_prefix + name

    async def _lock(self, key: str, timeout: float) -> OperationResult:
        return await self._locks.acquire(
            key, timeout, self._lock_expire, self._poll_interval_us
        )

    async def enqueue(
        self, name: str, ids: Sequence[int], timeout: float, delay: int = 0
    ) -> EnqueueResult:
        """タスクをエンキューする。

        既にスコア付きで存在する ID はスキップし、元のスコア（優先度）を維持する。

        Args:
            name: キュー名
            ids: タスク ID
            timeout: ロック取得の待機秒数（正の値）
            delay: スコアに加算する秒数。未来のスコアは取り出しを遅らせる

        Returns:
            追加・スキップされた ID を含む EnqueueResult
        """
        if not name or not ids or timeout <= 0:
            return EnqueueResult(name, Status.INVALID_ARGUMENT, "name, ids and timeout are required")
        key = self._key(name)
        locked = await self._lock(key, timeout)
        if not locked:
            return EnqueueResult(name, locked.status, locked.detail)

        store = self._locks.store
        added: list[int] = []
        skipped: list[int] = []
        try:
            score = int(self._locks.now()) + delay
            for task_id in ids:
                member = str(task_id)
                if await store.zscore(key, member):
                    skipped.append(task_id)
                    continue
                await store.zadd(key, member, score)
                added.append(task_id)
        except LockError as e:
            logger.warning("queue.store_error", queue=name, op="enqueue", error=str(e))
            return EnqueueResult(
                name, Status.STORE_ERROR, str(e), added=tuple(added), skipped=tuple(skipped)
            )
        finally:
            await self._locks.release(key)

        if skipped:
            logger.info("queue.enqueue_skipped", queue=name, skipped=skipped)
        return EnqueueResult(name, Status.ENQUEUED, added=tuple(added), skipped=tuple(skipped))

    async def dequeue(
        self, name: str, task_id: int, score: float, timeout: float
    ) -> OperationResult:
        """スコアが一致する場合のみタスクをデキューする。

        スコアが異なる場合、そのタスクは取得後に別のクライアントにより
        再エンキューされたとみなし SCORE_MISMATCH を返す。
        """
        if not name or task_id == 0 or score <= 0:
            return OperationResult(name, Status.INVALID_ARGUMENT, "name, task_id and score are required")
        key = self._key(name)
        locked = await self._lock(key, timeout)
        if not locked:
            return OperationResult(name, locked.status, locked.detail)

        store = self._locks.store
        member = str(task_id)
        try:
            current = await store.zscore(key, member)
            if current is None:
                return OperationResult(name, Status.NOT_FOUND, f"task {task_id} not queued")
            if current != score:
                return OperationResult(
                    name, Status.SCORE_MISMATCH, f"task {task_id} score is {current}, expected {score}"
                )
            await store.zrem(key, member)
        except LockError as e:
            logger.warning("queue.store_error", queue=name, op="dequeue", error=str(e))
            return OperationResult(name, Status.STORE_ERROR, str(e))
        finally:
            await self._locks.release(key)
        return OperationResult(name, Status.DEQUEUED)

    async def pop_batch(self, name: str, count: int, timeout: float) -> list[QueueEntry]:
        """スコアの小さい順にタスクを読み出す。

        順位 0..count（両端含む）を読むため最大 count + 1 件を返す。
        セットからは削除しない。取り出したタスクは dequeue にスコアを渡して
        確定させる。失敗時は空リスト。
        """
        if not name or count <= 0:
            return []
        key = self._key(name)
        locked = await self._lock(key, timeout)
        if not locked:
            return []

        try:
            rows = await self._locks.store.zrange_with_scores(key, 0, count)
        except LockError as e:
            logger.warning("queue.store_error", queue=name, op="pop_batch", error=str(e))
            return []
        finally:
            await self._locks.release(key)

        entries: list[QueueEntry] = []
        for member, score in rows:
            try:
                entries.append(QueueEntry(task_id=int(member), score=score))
            except ValueError:
                logger.warning("queue.invalid_member", queue=name, member=member)
        return entries
