import asyncio

import pytest

from logshipper.limit import Backoff, RateLimiter


@pytest.mark.asyncio
async def test_simple_max_slots():
    limiter = RateLimiter(3)
    slot1 = await limiter.get_slot(None)
    slot2 = await limiter.get_slot(None)
    slot3 = await limiter.get_slot(None)
    assert [slot1.slot, slot2.slot, slot3.slot] == [1, 2, 3]
    assert limiter.in_use() == 3
    slot1.release()
    assert limiter.in_use() == 2
    slot2.release()
    assert limiter.in_use() == 1
    slot3.release()
    assert limiter.in_use() == 0


@pytest.mark.asyncio
async def test_single_thread_loop():
    limiter = RateLimiter(3)
    for _ in range(10_000):
        with await limiter.get_slot(None) as slot:
            assert slot.slot != 0
    assert limiter.in_use() == 0


@pytest.mark.asyncio
async def test_release_is_idempotent():
    limiter = RateLimiter(2)
    slot = await limiter.get_slot("a")
    other = await limiter.get_slot("b")
    slot.release()
    slot.release()
    assert limiter.in_use() == 1
    other.release()
    assert limiter.in_use() == 0


@pytest.mark.asyncio
async def test_into_inner_returns_item_and_frees_slot():
    limiter = RateLimiter(1)
    slot = await limiter.get_slot({"body": "data"})
    assert slot.into_inner() == {"body": "data"}
    assert limiter.in_use() == 0


@pytest.mark.asyncio
async def test_waits_while_full():
    limiter = RateLimiter(1)
    held = await limiter.get_slot("first")
    waiter = asyncio.create_task(limiter.get_slot("second"))
    await asyncio.sleep(0.05)
    assert not waiter.done()
    held.release()
    slot = await asyncio.wait_for(waiter, timeout=5)
    assert slot.item == "second"
    assert slot.slot == 1
    assert limiter.limit_hits > 0
    slot.release()


def test_backoff_first_delay_is_multiplier_milliseconds():
    backoff = Backoff(base=3, multiplier=5)
    assert backoff.next_delay() == pytest.approx(5 / 1000)


def test_backoff_grows_by_base():
    backoff = Backoff(base=3, multiplier=5)
    delays = [backoff.next_delay() for _ in range(4)]
    for earlier, later in zip(delays, delays[1:]):
        assert later == pytest.approx(earlier * 3)


@pytest.mark.asyncio
async def test_snooze_advances_step():
    fresh = Backoff(base=2, multiplier=1)
    snoozed = Backoff(base=2, multiplier=1)
    await snoozed.snooze()
    assert snoozed.next_delay() > fresh.next_delay()