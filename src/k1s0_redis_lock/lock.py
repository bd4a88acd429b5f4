"""Self-expiring named locks on top of a shared LockStore."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from .config import LockSection
from .exceptions import LockError
from .models import HeldLock, OperationResult, Status
from .store import TTL_MISSING, TTL_NO_EXPIRY, LockStore

logger = structlog.stdlib.get_logger(__name__)


class LockManager:
    """Acquires, renews and releases named locks for one client.

    The store is the source of truth. The handle only remembers which
    names it believes it holds (name -> HeldLock) so that it never deletes
    a record it did not create and can release everything in bulk.

    A handle is not safe for uncoordinated concurrent use; callers that
    share one must serialise their calls.
    """

    def __init__(
        self,
        store: LockStore,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        key_prefix: str = "kx:",
        default_expire: int = 30,
        poll_interval_us: int = 100_000,
    ) -> None:
        self._store = store
        self._clock = clock
        self._sleep = sleep
        self._key_prefix = key_prefix
        self._default_expire = default_expire
        self._poll_interval_us = poll_interval_us
        self._held: dict[str, HeldLock] = {}

    @classmethod
    def from_settings(
        cls,
        store: LockStore,
        settings: LockSection,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> LockManager:
        return cls(
            store,
            clock=clock,
            sleep=sleep,
            key_prefix=settings.key_prefix,
            default_expire=settings.default_expire,
            poll_interval_us=settings.poll_interval_us,
        )

    @property
    def store(self) -> LockStore:
        return self._store

    def now(self) -> float:
        return self._clock()

    def _key(self, name: str) -> str:
        return self._key_prefix + name

    def _claim(self, name: str, expire_at: int) -> None:
        self._held[name] = HeldLock(token=expire_at, expires_at=expire_at)

    async def acquire(
        self,
        name: str,
        wait_timeout: float = 0,
        expire: int | None = None,
        poll_interval_us: int | None = None,
    ) -> OperationResult:
        """Acquire ``name``, polling until ``wait_timeout`` seconds have passed.

        Creation (SETNX) and arming (EXPIRE) are two separate calls. A record
        found without an expiry means a holder died between them; it is
        adopted immediately instead of waited on.
        """
        if not name:
            return OperationResult(name, Status.INVALID_ARGUMENT, "name must not be empty")
        if expire is None:
            expire = self._default_expire
        if poll_interval_us is None:
            poll_interval_us = self._poll_interval_us
        if expire <= 0:
            logger.warning("lock.non_positive_expire", name=name, expire=expire)

        now = self._clock()
        deadline = now + wait_timeout
        expire_at = int(now) + expire
        key = self._key(name)

        while True:
            try:
                created = await self._store.set_nx(key, expire_at)
            except LockError as e:
                logger.warning("lock.store_error", name=name, op="set_nx", error=str(e))
                return OperationResult(name, Status.STORE_ERROR, str(e))

            if created:
                try:
                    await self._store.expire(key, expire)
                except LockError as e:
                    # record is ours; the next contender's recovery branch arms it
                    logger.warning("lock.arm_failed", name=name, error=str(e))
                self._claim(name, expire_at)
                logger.debug("lock.acquired", name=name, expire=expire)
                return OperationResult(name, Status.ACQUIRED)

            try:
                ttl = await self._store.ttl(key)
            except LockError as e:
                logger.warning("lock.store_error", name=name, op="ttl", error=str(e))
                return OperationResult(name, Status.STORE_ERROR, str(e))

            if ttl == TTL_NO_EXPIRY:
                try:
                    await self._store.set(key, expire_at, expire)
                except LockError as e:
                    logger.warning("lock.store_error", name=name, op="set", error=str(e))
                    return OperationResult(name, Status.STORE_ERROR, str(e))
                self._claim(name, expire_at)
                logger.warning("lock.recovered", name=name, expire=expire)
                return OperationResult(name, Status.RECOVERED, "adopted record without expiry")
            if ttl == TTL_MISSING:
                # released between SETNX and TTL
                continue

            if wait_timeout <= 0:
                return OperationResult(name, Status.CONTENDED, f"held elsewhere, ttl={ttl}s")
            if self._clock() >= deadline:
                logger.info("lock.wait_timed_out", name=name, wait_timeout=wait_timeout)
                return OperationResult(name, Status.TIMED_OUT, f"gave up after {wait_timeout}s")
            await self._sleep(poll_interval_us / 1_000_000)

    async def release(self, name: str) -> OperationResult:
        """Delete the record for ``name`` if this handle holds it.

        The delete is unconditional: if our lock already expired and someone
        else acquired it, their record is removed.
        """
        if name not in self._held:
            return OperationResult(name, Status.NOT_HELD)
        try:
            await self._store.delete(self._key(name))
        except LockError as e:
            logger.warning("lock.store_error", name=name, op="delete", error=str(e))
            return OperationResult(name, Status.STORE_ERROR, str(e))
        del self._held[name]
        logger.debug("lock.released", name=name)
        return OperationResult(name, Status.RELEASED)

    async def release_all(self) -> bool:
        """Release every held lock. True only if all releases succeeded."""
        results = [await self.release(name) for name in list(self._held)]
        return all(results)

    async def renew(self, name: str, extra: int) -> OperationResult:
        """Push the expiry of a held lock ``extra`` seconds further.

        Extensions accumulate on the locally recorded expiry instant, not on
        the current time.
        """
        if extra <= 0:
            return OperationResult(name, Status.INVALID_ARGUMENT, "extra must be positive")
        if not await self.is_held(name):
            return OperationResult(name, Status.NOT_HELD)
        held = self._held[name]
        new_expiry = held.expires_at + extra
        try:
            await self._store.expire_at(self._key(name), new_expiry)
        except LockError as e:
            logger.warning("lock.store_error", name=name, op="expire_at", error=str(e))
            return OperationResult(name, Status.STORE_ERROR, str(e))
        held.expires_at = new_expiry
        return OperationResult(name, Status.RENEWED)

    async def is_held(self, name: str) -> bool:
        """True if held locally and the store record still carries our token."""
        held = self._held.get(name)
        if held is None:
            return False
        try:
            value = await self._store.get(self._key(name))
        except LockError as e:
            logger.warning("lock.store_error", name=name, op="get", error=str(e))
            return False
        return value == str(held.token)

    def held_names(self) -> list[str]:
        return list(self._held)

    def expiry_of(self, name: str) -> int | None:
        held = self._held.get(name)
        return held.expires_at if held is not None else None

    @contextlib.asynccontextmanager
    async def hold(
        self,
        name: str,
        wait_timeout: float = 0,
        expire: int | None = None,
        poll_interval_us: int | None = None,
    ) -> AsyncIterator[OperationResult]:
        """Hold ``name`` for the duration of the block.

        Raises:
            LockError: if the lock could not be acquired
        """
        result = await self.acquire(name, wait_timeout, expire, poll_interval_us)
        if not result:
            raise LockError(
                code=result.status.value,
                message=f"Failed to acquire lock {name}: {result.detail}",
            )
        try:
            yield result
        finally:
            await self.release(name)
