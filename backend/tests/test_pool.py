import asyncio

import pytest

from rfcbridge.core.exceptions import (
    PoolAcquireTimeout,
    PoolDrainedError,
    PoolError,
    RfcConnectionError,
)


async def test_acquire_and_release_reuses_client(pool, sap_server):
    client = await pool.acquire()
    assert client.is_connected
    assert pool.stats["busy"] == 1

    await pool.release(client)
    assert pool.stats == {"total": 1, "available": 1, "busy": 0, "waiting": 0, "drained": False}

    again = await pool.acquire()
    assert again is client
    assert sap_server.opens == 1


async def test_waiter_fairness(make_pool, sap_server):
    """With two clients busy the third caller waits and receives the first release."""
    pool = make_pool(pool_size=2)
    a = await pool.acquire()
    b = await pool.acquire()

    c_task = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    assert pool.stats["waiting"] == 1

    await pool.release(a)
    c = await c_task
    assert c is a
    assert pool.stats["busy"] == 2

    await pool.release(b)
    assert pool.stats["available"] == 1
    assert sap_server.opens == 2


async def test_dead_client_is_replaced_for_waiter(make_pool, sap_server):
    pool = make_pool(pool_size=2)
    a = await pool.acquire()
    await pool.acquire()

    c_task = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)

    await a.close()
    await pool.release(a)
    c = await c_task
    assert c is not a
    assert c.is_connected
    assert sap_server.opens == 3
    assert pool.stats["total"] == 2


async def test_waiters_are_served_fifo(make_pool):
    pool = make_pool(pool_size=1)
    holder = await pool.acquire()
    served = []

    async def _worker(name):
        client = await pool.acquire()
        served.append(name)
        await asyncio.sleep(0)
        await pool.release(client)

    tasks = []
    for name in ("first", "second", "third"):
        tasks.append(asyncio.create_task(_worker(name)))
        await asyncio.sleep(0)
    assert pool.stats["waiting"] == 3

    await pool.release(holder)
    await asyncio.gather(*tasks)
    assert served == ["first", "second", "third"]


async def test_acquire_timeout(make_pool):
    pool = make_pool(pool_size=1, acquire_timeout=0.05)
    await pool.acquire()

    with pytest.raises(PoolAcquireTimeout):
        await pool.acquire()
    assert pool.stats["waiting"] == 0


async def test_dead_available_client_is_discarded(pool, sap_server):
    client = await pool.acquire()
    await pool.release(client)
    await client.close()

    fresh = await pool.acquire()
    assert fresh is not client
    assert fresh.is_connected
    assert pool.stats["total"] == 1
    assert sap_server.opens == 2


async def test_open_failure_reaches_only_that_waiter(make_pool, sap_server):
    pool = make_pool(pool_size=1)
    holder = await pool.acquire()
    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)

    await holder.close()
    sap_server.fail_open = True
    await pool.release(holder)

    with pytest.raises(RfcConnectionError):
        await waiter
    assert pool.stats["total"] == 0

    sap_server.fail_open = False
    client = await pool.acquire()
    assert client.is_connected


async def test_failed_replacement_passes_slot_to_next_waiter(make_pool, sap_server):
    """The waiter whose replacement open fails gets the error; the next one gets a client."""
    pool = make_pool(pool_size=1)
    holder = await pool.acquire()
    first = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    second = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    assert pool.stats["waiting"] == 2

    await holder.close()
    sap_server.open_failures = 1
    await pool.release(holder)

    with pytest.raises(RfcConnectionError):
        await first
    client = await second
    assert client.is_connected
    assert pool.stats == {"total": 1, "available": 0, "busy": 1, "waiting": 0, "drained": False}


async def test_open_failure_on_acquire_wakes_queued_waiter(make_pool, sap_server):
    """A later caller queues behind the waiter that inherits the freed slot."""
    pool = make_pool(pool_size=1)
    sap_server.open_delay = 0.01
    sap_server.open_failures = 1

    opener = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    queued = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    assert pool.stats["waiting"] == 1

    with pytest.raises(RfcConnectionError):
        await opener
    late = asyncio.create_task(pool.acquire())

    client = await queued
    assert client.is_connected
    assert not late.done()

    await pool.release(client)
    assert await late is client
    assert sap_server.opens == 2


async def test_double_release_is_ignored(pool):
    client = await pool.acquire()
    await pool.release(client)
    await pool.release(client)
    assert pool.stats["available"] == 1
    assert pool.stats["total"] == 1


async def test_busy_plus_available_never_exceeds_size(make_pool, sap_server):
    pool = make_pool(pool_size=2)
    peak = 0

    async def _job():
        nonlocal peak
        async with pool.connection() as client:
            stats = pool.stats
            peak = max(peak, stats["busy"] + stats["available"])
            await client.call("RFC_PING")
            await asyncio.sleep(0.01)

    await asyncio.gather(*(_job() for _ in range(10)))
    assert peak <= 2
    assert sap_server.opens <= 2
    assert pool.stats["total"] <= 2


async def test_drain_rejects_waiters_and_future_acquires(make_pool):
    pool = make_pool(pool_size=1)
    held = await pool.acquire()
    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)

    await pool.drain()
    with pytest.raises(PoolDrainedError):
        await waiter
    with pytest.raises(PoolDrainedError):
        await pool.acquire()
    assert held.is_connected is False
    assert pool.stats["total"] == 0

    await pool.release(held)
    assert pool.stats["available"] == 0


async def test_stateful_client_cannot_be_released(pool):
    client = await pool.acquire()
    await client.begin_stateful_session()

    with pytest.raises(PoolError):
        await pool.release(client)
    assert pool.stats["available"] == 0

    await client.end_stateful_session(commit=True)
    await pool.release(client)
    assert pool.stats["available"] == 1


async def test_connection_context_rolls_back_open_session(pool, sap_server):
    async with pool.connection() as client:
        await client.begin_stateful_session()
    assert len(sap_server.calls_to("BAPI_TRANSACTION_ROLLBACK")) == 1
    assert pool.stats["available"] == 1


async def test_cancelled_waiter_leaves_queue(make_pool):
    pool = make_pool(pool_size=1)
    held = await pool.acquire()
    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert pool.stats["waiting"] == 0

    await pool.release(held)
    assert pool.stats["available"] == 1
