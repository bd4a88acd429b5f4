"""LockManager のユニットテスト"""

import pytest
from k1s0_redis_lock import LockError, LockErrorCodes, Status, TTL_MISSING

START = 1_700_000_000


async def test_acquire_creates_armed_record(locks, store) -> None:
    """取得するとレコードが作成され TTL が設定されること。"""
    result = await locks.acquire("job", expire=10)
    assert result
    assert result.status == Status.ACQUIRED
    assert await store.get("kx:job") == str(START + 10)
    assert await store.ttl("kx:job") == 10
    assert locks.held_names() == ["job"]
    assert locks.expiry_of("job") == START + 10


async def test_acquire_empty_name_is_rejected(locks, store) -> None:
    """空のロック名は検証エラー。"""
    result = await locks.acquire("", expire=10)
    assert not result
    assert result.status == Status.INVALID_ARGUMENT
    assert locks.held_names() == []


async def test_second_handle_is_excluded(make_manager) -> None:
    """保持中のロックは別ハンドルから取得できないこと。"""
    first, second = make_manager(), make_manager()
    assert await first.acquire("job", expire=10)

    result = await second.acquire("job", wait_timeout=0, expire=10)
    assert not result
    assert result.status == Status.CONTENDED
    assert second.held_names() == []


async def test_wait_times_out_after_polling(make_manager, clock) -> None:
    """待機時間内に取得できなければ TIMED_OUT になること。"""
    first, second = make_manager(), make_manager()
    await first.acquire("job", expire=10)

    result = await second.acquire("job", wait_timeout=1, expire=10, poll_interval_us=250_000)
    assert result.status == Status.TIMED_OUT
    assert clock.sleeps == [0.25, 0.25, 0.25, 0.25]


async def test_lock_self_releases_after_ttl(make_manager, clock) -> None:
    """保持者がクラッシュしても TTL 経過後に取得できること。"""
    crashed, waiter = make_manager(), make_manager()
    await crashed.acquire("job", expire=5)

    result = await waiter.acquire("job", wait_timeout=30, expire=10, poll_interval_us=1_000_000)
    assert result.status == Status.ACQUIRED
    assert clock.now == START + 5
    assert await waiter.is_held("job")


async def test_abandoned_record_is_recovered_immediately(locks, store, clock) -> None:
    """期限のないレコード（作成直後のクラッシュ）は待たずに回収されること。"""
    await store.set_nx("kx:job", 42)

    result = await locks.acquire("job", wait_timeout=0, expire=20)
    assert result.status == Status.RECOVERED
    assert clock.sleeps == []
    assert await store.ttl("kx:job") == 20
    assert await locks.is_held("job")


async def test_arm_failure_leaves_record_recoverable(make_manager, store, monkeypatch) -> None:
    """EXPIRE に失敗してもロックは取得扱いで、次の取得者が回収できること。"""
    first, second = make_manager(), make_manager()

    async def broken_expire(key: str, seconds: int) -> bool:
        raise LockError(LockErrorCodes.STORE_ERROR, "connection reset")

    with monkeypatch.context() as m:
        m.setattr(store, "expire", broken_expire)
        assert (await first.acquire("job", expire=10)).status == Status.ACQUIRED

    assert await store.ttl("kx:job") == -1
    assert (await second.acquire("job", expire=10)).status == Status.RECOVERED


async def test_vanished_record_is_retried_without_sleeping(locks, store, clock, monkeypatch) -> None:
    """SETNX と TTL の間にレコードが消えた場合は即座に再試行すること。"""
    attempts = []
    wrapped = store.set_nx

    async def racing_set_nx(key: str, value: int) -> bool:
        attempts.append(key)
        if len(attempts) == 1:
            return False
        return await wrapped(key, value)

    async def missing_ttl(key: str) -> int:
        return TTL_MISSING

    monkeypatch.setattr(store, "set_nx", racing_set_nx)
    monkeypatch.setattr(store, "ttl", missing_ttl)

    result = await locks.acquire("job", wait_timeout=0, expire=10)
    assert result.status == Status.ACQUIRED
    assert len(attempts) == 2
    assert clock.sleeps == []


async def test_store_error_aborts_acquire(locks, store, monkeypatch) -> None:
    """ストアエラーはリトライせず STORE_ERROR を返すこと。"""
    calls = 0

    async def failing_set_nx(key: str, value: int) -> bool:
        nonlocal calls
        calls += 1
        raise LockError(LockErrorCodes.STORE_ERROR, "down")

    monkeypatch.setattr(store, "set_nx", failing_set_nx)
    result = await locks.acquire("job", wait_timeout=10, expire=10)
    assert result.status == Status.STORE_ERROR
    assert calls == 1
    assert locks.held_names() == []


async def test_zero_expire_is_caller_error(locks, store) -> None:
    """expire=0 は拒否されないが、レコードは即座に失効すること。"""
    result = await locks.acquire("job", expire=0)
    assert result.status == Status.ACQUIRED
    assert await store.get("kx:job") is None


async def test_release_unheld_name_leaves_store_untouched(make_manager, store) -> None:
    """保持していないロックの解放は失敗し、他者のレコードを消さないこと。"""
    owner, stranger = make_manager(), make_manager()
    await owner.acquire("job", expire=10)

    result = await stranger.release("job")
    assert not result
    assert result.status == Status.NOT_HELD
    assert await store.get("kx:job") is not None


async def test_release_deletes_record(locks, store) -> None:
    """解放するとレコードとローカルの保持情報が消えること。"""
    await locks.acquire("job", expire=10)
    result = await locks.release("job")
    assert result.status == Status.RELEASED
    assert await store.get("kx:job") is None
    assert locks.held_names() == []
    assert (await locks.release("job")).status == Status.NOT_HELD


async def test_release_store_error_keeps_handle(locks, store, monkeypatch) -> None:
    """DEL に失敗した場合はローカルの保持情報を残すこと。"""
    await locks.acquire("job", expire=10)

    async def failing_delete(key: str) -> bool:
        raise LockError(LockErrorCodes.STORE_ERROR, "down")

    monkeypatch.setattr(store, "delete", failing_delete)
    result = await locks.release("job")
    assert result.status == Status.STORE_ERROR
    assert locks.held_names() == ["job"]


async def test_release_all_attempts_every_lock(locks, store, monkeypatch) -> None:
    """一部の解放に失敗しても全ロックを試行し、結果は集約して返すこと。"""
    await locks.acquire("a", expire=10)
    await locks.acquire("b", expire=10)
    wrapped = store.delete

    async def flaky_delete(key: str) -> bool:
        if key == "kx:a":
            raise LockError(LockErrorCodes.STORE_ERROR, "down")
        return await wrapped(key)

    monkeypatch.setattr(store, "delete", flaky_delete)
    assert await locks.release_all() is False
    assert locks.held_names() == ["a"]
    assert await store.get("kx:b") is None


async def test_release_all_success(locks) -> None:
    await locks.acquire("a", expire=10)
    await locks.acquire("b", expire=10)
    assert await locks.release_all() is True
    assert locks.held_names() == []


async def test_renew_accumulates_on_recorded_expiry(locks, store, clock) -> None:
    """延長は現在時刻ではなく記録済みの失効時刻に加算されること。"""
    await locks.acquire("job", expire=10)

    assert (await locks.renew("job", 5)).status == Status.RENEWED
    assert locks.expiry_of("job") == START + 15
    assert await store.ttl("kx:job") == 15

    clock.advance(3)
    assert await locks.renew("job", 5)
    assert locks.expiry_of("job") == START + 20
    assert await store.ttl("kx:job") == 17
    assert await locks.is_held("job")


@pytest.mark.parametrize("extra", [0, -5])
async def test_renew_rejects_non_positive_extension(locks, extra) -> None:
    """0 以下の延長は拒否され、失効時刻は変わらないこと。"""
    await locks.acquire("job", expire=10)
    result = await locks.renew("job", extra)
    assert result.status == Status.INVALID_ARGUMENT
    assert locks.expiry_of("job") == START + 10


async def test_renew_requires_held_lock(locks) -> None:
    result = await locks.renew("job", 5)
    assert result.status == Status.NOT_HELD


async def test_is_held_detects_reacquired_record(make_manager, clock) -> None:
    """失効後に他者が取得した場合、元の保持者の is_held は False。"""
    first, second = make_manager(), make_manager()
    await first.acquire("job", expire=5)
    assert await first.is_held("job")

    clock.advance(6)
    assert (await second.acquire("job", expire=30)).status == Status.ACQUIRED
    assert await first.is_held("job") is False
    assert await second.is_held("job") is True
    assert (await first.renew("job", 10)).status == Status.NOT_HELD


async def test_release_after_expiry_deletes_new_holders_record(make_manager, store, clock) -> None:
    """フェンシングトークンがないため、失効済みの保持者の解放が新しい保持者のレコードを消す。

    既知の制約の回帰テスト。
    """
    stale, current = make_manager(), make_manager()
    await stale.acquire("job", expire=5)
    clock.advance(6)
    await current.acquire("job", expire=30)

    assert (await stale.release("job")).status == Status.RELEASED
    assert await store.get("kx:job") is None
    assert await current.is_held("job") is False
    assert current.held_names() == ["job"]


async def test_hold_releases_on_exit(locks, store) -> None:
    """hold はブロック終了時に解放すること。"""
    async with locks.hold("job", expire=10) as result:
        assert result.status == Status.ACQUIRED
        assert await locks.is_held("job")
    assert await store.get("kx:job") is None
    assert locks.held_names() == []


async def test_hold_releases_when_block_raises(locks, store) -> None:
    with pytest.raises(RuntimeError):
        async with locks.hold("job", expire=10):
            raise RuntimeError("boom")
    assert await store.get("kx:job") is None


async def test_hold_raises_when_contended(make_manager) -> None:
    """取得できなければ LockError を送出すること。"""
    owner, other = make_manager(), make_manager()
    await owner.acquire("job", expire=10)
    with pytest.raises(LockError) as exc_info:
        async with other.hold("job"):
            pass
    assert exc_info.value.code == LockErrorCodes.CONTENDED
