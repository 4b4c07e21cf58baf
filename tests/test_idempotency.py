import asyncio

from printserver_agent.idempotency import IdempotencyCache


def test_marked_key_is_present_within_retention():
    cache = IdempotencyCache(ttl_seconds=3600)
    cache.mark_processed("k", now=1000)
    assert cache.has("k", now=1000 + 3599)
    assert not cache.has("other", now=1000)


def test_expired_key_is_absent_even_before_sweep():
    cache = IdempotencyCache(ttl_seconds=3600)
    cache.mark_processed("k", now=1000)
    assert not cache.has("k", now=1000 + 3601)
    assert len(cache) == 1


def test_mark_overwrites_timestamp():
    cache = IdempotencyCache(ttl_seconds=10)
    cache.mark_processed("k", now=0)
    cache.mark_processed("k", now=100)
    assert cache.has("k", now=105)


def test_sweep_removes_only_expired(caplog):
    cache = IdempotencyCache(ttl_seconds=3600)
    cache.mark_processed("old", now=0)
    cache.mark_processed("young", now=5000)

    with caplog.at_level("INFO"):
        removed = cache.sweep(now=6000)

    assert removed == 1
    assert not cache.has("old", now=6000)
    assert cache.has("young", now=6000)
    assert len(cache) == 1
    assert "removed 1 expired entry" in caplog.text


def test_sweeper_runs_until_stopped():
    cache = IdempotencyCache(ttl_seconds=0.01, sweep_interval=0.01)
    cache.mark_processed("k")

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(cache.run_sweeper(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, 1)

    asyncio.run(scenario())

    assert len(cache) == 0
