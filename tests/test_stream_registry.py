import asyncio

import pytest

from app.services.stream_registry import CancelOutcome, CancellationHandle, StreamRegistry


@pytest.mark.anyio
async def test_register_and_lookup():
    registry = StreamRegistry()
    handle = CancellationHandle()
    assert await registry.register("session-1", handle) is None
    assert await registry.lookup("session-1") is handle
    assert await registry.lookup("session-2") is None
    assert "session-1" in registry
    assert len(registry) == 1


@pytest.mark.anyio
async def test_cancel_triggers_handle_and_removes_entry():
    registry = StreamRegistry()
    handle = CancellationHandle()
    await registry.register("session-1", handle)

    assert await registry.cancel("session-1") == CancelOutcome.STOPPED
    assert handle.cancelled
    assert await registry.lookup("session-1") is None
    assert await registry.cancel("session-1") == CancelOutcome.NO_STREAM


@pytest.mark.anyio
async def test_cancel_without_stream_is_idempotent():
    registry = StreamRegistry()
    assert await registry.cancel("missing") == CancelOutcome.NO_STREAM
    assert await registry.cancel("missing") == CancelOutcome.NO_STREAM


@pytest.mark.anyio
async def test_register_replaces_and_cancels_previous_handle():
    registry = StreamRegistry()
    first = CancellationHandle()
    second = CancellationHandle()
    await registry.register("session-1", first)

    previous = await registry.register("session-1", second)

    assert previous is first
    assert first.cancelled
    assert not second.cancelled
    assert await registry.lookup("session-1") is second
    assert len(registry) == 1


@pytest.mark.anyio
async def test_unregister_with_stale_handle_keeps_successor():
    registry = StreamRegistry()
    first = CancellationHandle()
    second = CancellationHandle()
    await registry.register("session-1", first)
    await registry.register("session-1", second)

    assert await registry.unregister("session-1", first) is False
    assert await registry.lookup("session-1") is second
    assert await registry.unregister("session-1", second) is True
    assert await registry.lookup("session-1") is None


@pytest.mark.anyio
async def test_unregister_without_handle_is_unconditional():
    registry = StreamRegistry()
    await registry.register("session-1", CancellationHandle())
    assert await registry.unregister("session-1") is True
    assert await registry.unregister("session-1") is False


@pytest.mark.anyio
async def test_unregister_after_external_cancel_is_a_noop():
    registry = StreamRegistry()
    handle = CancellationHandle()
    await registry.register("session-1", handle)
    assert await registry.cancel("session-1") == CancelOutcome.STOPPED
    assert await registry.unregister("session-1", handle) is False


@pytest.mark.anyio
async def test_claim_releases_slot_on_error():
    registry = StreamRegistry()
    with pytest.raises(RuntimeError):
        async with registry.claim("session-1") as handle:
            assert await registry.lookup("session-1") is handle
            raise RuntimeError("boom")
    assert await registry.lookup("session-1") is None


@pytest.mark.anyio
async def test_concurrent_claims_keep_one_live_handle():
    registry = StreamRegistry()
    handles = [CancellationHandle() for _ in range(20)]

    await asyncio.gather(*(registry.register("session-1", handle) for handle in handles))

    live = [handle for handle in handles if not handle.cancelled]
    assert len(live) == 1
    assert await registry.lookup("session-1") is live[0]


@pytest.mark.anyio
async def test_cancellation_handle_wait():
    handle = CancellationHandle()
    waiter = asyncio.create_task(handle.wait())
    await asyncio.sleep(0)
    assert not waiter.done()
    handle.cancel()
    await asyncio.wait_for(waiter, timeout=1)
    assert handle.cancelled
