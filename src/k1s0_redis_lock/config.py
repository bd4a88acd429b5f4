"""設定型定義と YAML 読み込み"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import LockError, LockErrorCodes


class RedisSection(BaseModel):
    """Redis 接続プール設定。"""

    host: str = "127.0.0.1"
    port: int = Field(default=6379, ge=1, le=65535)
    password: str = ""
    db: int = Field(default=0, ge=0)
    max_connections: int = Field(default=100, ge=1)
    pool_timeout: float = Field(default=5.0, gt=0)
    socket_timeout: float | None = 5.0
    socket_connect_timeout: float | None = 5.0
    health_check_interval: int = Field(default=180, ge=0)


class LockSection(BaseModel):
    """ロックマネージャ設定。"""

    key_prefix: str = Field(default="kx:", min_length=1)
    default_expire: int = Field(default=30, gt=0)
    poll_interval_us: int = Field(default=100_000, ge=0)


class QueueSection(BaseModel):
    """キュー設定。"""

    key_prefix: str = Field(default="Queue:", min_length=1)
    lock_expire: int = Field(default=15, gt=0)
    poll_interval_us: int = Field(default=10_000, ge=0)


class LogSection(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseModel):
    """redis_lock 全体設定。"""

    redis: RedisSection = Field(default_factory=RedisSection)
    lock: LockSection = Field(default_factory=LockSection)
    queue: QueueSection = Field(default_factory=QueueSection)
    log: LogSection = Field(default_factory=LogSection)

    @model_validator(mode="after")
    def _check_prefixes(self) -> Settings:
        # 同じプレフィックスだとキュー "jobs" のロックレコードとキュー "<prefix>jobs" のセットが同じキーになる
        if self.lock.key_prefix == self.queue.key_prefix:
            raise ValueError("lock.key_prefix and queue.key_prefix must differ")
        return self


def load_settings(path: Path) -> Settings:
    """YAML 設定ファイルを読み込んで Settings を返す。

    Raises:
        LockError: 読み込み・パース・検証に失敗した場合（CONFIG_ERROR）
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LockError(
            code=LockErrorCodes.CONFIG_ERROR,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise LockError(
            code=LockErrorCodes.CONFIG_ERROR,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise LockError(
            code=LockErrorCodes.CONFIG_ERROR,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e
