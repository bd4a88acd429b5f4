"""ロック・キュー操作の結果モデル"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Status(StrEnum):
    """操作結果のステータス。"""

    ACQUIRED = "ACQUIRED"
    RECOVERED = "RECOVERED"
    RELEASED = "RELEASED"
    RENEWED = "RENEWED"
    ENQUEUED = "ENQUEUED"
    DEQUEUED = "DEQUEUED"
    CONTENDED = "CONTENDED"
    TIMED_OUT = "TIMED_OUT"
    NOT_HELD = "NOT_HELD"
    NOT_FOUND = "NOT_FOUND"
    SCORE_MISMATCH = "SCORE_MISMATCH"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    STORE_ERROR = "STORE_ERROR"


_SUCCESS = frozenset(
    {
        Status.ACQUIRED,
        Status.RECOVERED,
        Status.RELEASED,
        Status.RENEWED,
        Status.ENQUEUED,
        Status.DEQUEUED,
    }
)


@dataclass(frozen=True)
class OperationResult:
    """ロック操作・キュー操作の結果。

    真偽値として評価すると成功可否になる。失敗理由（競合か障害か）は
    ``status`` で区別する。
    """

    name: str
    status: Status
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status in _SUCCESS

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class EnqueueResult(OperationResult):
    """enqueue の結果。スキップされた ID も返す。"""

    added: tuple[int, ...] = ()
    skipped: tuple[int, ...] = ()


@dataclass(frozen=True)
class QueueEntry:
    """キューから読み出したタスク。"""

    task_id: int
    score: float


@dataclass
class HeldLock:
    """ローカルハンドルが保持しているロック。

    token はストアに書き込んだ値（取得時点で算出した失効時刻）。
    expires_at は renew により延長された現在の失効時刻。
    """

    token: int
    expires_at: int
