"""redis_lock ライブラリの例外型定義"""

from __future__ import annotations


class LockError(Exception):
    """redis_lock ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class LockErrorCodes:
    """LockError のエラーコード定数。"""

    INVALID_ARGUMENT: str = "INVALID_ARGUMENT"
    STORE_ERROR: str = "STORE_ERROR"
    CONTENDED: str = "CONTENDED"
    TIMED_OUT: str = "TIMED_OUT"
    NOT_HELD: str = "NOT_HELD"
    CONFIG_ERROR: str = "CONFIG_ERROR"
