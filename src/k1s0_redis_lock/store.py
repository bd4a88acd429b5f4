"""LockStore 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod

# TTL の番兵値（Redis の TTL コマンドと同じ）
TTL_NO_EXPIRY = -1
TTL_MISSING = -2


class LockStore(ABC):
    """ロックとキューが利用する共有ストアの抽象基底クラス。

    実装はストア呼び出しの失敗を LockError(STORE_ERROR) として送出する。
    """

    @abstractmethod
    async def set_nx(self, key: str, value: int) -> bool:
        """キーが存在しない場合のみ値を設定する。作成できたら True。"""
        ...

    @abstractmethod
    async def set(self, key: str, value: int, ttl: int) -> None:
        """有効期限付きで値を上書きする。"""
        ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """現在から seconds 秒後に失効させる。既存の期限は上書き。"""
        ...

    @abstractmethod
    async def expire_at(self, key: str, when: int) -> bool:
        """エポック秒 when に失効させる。"""
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """残り秒数。期限なしは TTL_NO_EXPIRY、キーなしは TTL_MISSING。"""
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """キーに対応する値を取得する。存在しなければ None。"""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """キーを無条件に削除する。削除できたら True。"""
        ...

    @abstractmethod
    async def zscore(self, key: str, member: str) -> float | None:
        """ソート済みセットのメンバーのスコア。存在しなければ None。"""
        ...

    @abstractmethod
    async def zadd(self, key: str, member: str, score: float) -> None:
        """メンバーを追加、または既存メンバーのスコアを更新する。"""
        ...

    @abstractmethod
    async def zrem(self, key: str, member: str) -> bool:
        """メンバーを削除する。存在しなければ何もしない。"""
        ...

    @abstractmethod
    async def zrange_with_scores(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """スコア昇順で順位 start..stop（両端含む）のメンバーを返す。"""
        ...

    async def close(self) -> None:
        """接続を解放する。"""
        return None
