import pytest

from gymsync.services.reachability import ReachabilityMonitor


@pytest.mark.asyncio
async def test_probe_result_is_cached_within_ttl(monitor, probe, clock):
    assert await monitor.is_online() is True
    assert await monitor.is_online() is True
    assert probe.calls == 1

    clock.advance(11)
    await monitor.is_online()
    assert probe.calls == 2


@pytest.mark.asyncio
async def test_offline_transition_seen_after_ttl(monitor, probe, clock):
    assert await monitor.is_online() is True
    probe.online = False
    assert await monitor.is_online() is True
    clock.advance(10)
    assert await monitor.is_online() is False


@pytest.mark.asyncio
async def test_invalidate_forces_reprobe(monitor, probe):
    await monitor.is_online()
    monitor.invalidate()
    await monitor.is_online()
    assert probe.calls == 2


@pytest.mark.asyncio
async def test_probe_failure_means_offline(clock):
    async def broken_probe():
        raise OSError("no route to host")

    monitor = ReachabilityMonitor(probe=broken_probe, ttl_seconds=10, clock=clock)
    assert await monitor.is_online() is False


@pytest.mark.asyncio
async def test_listeners_notified_on_change_only(monitor, probe, clock):
    seen = []
    unsubscribe = monitor.subscribe(seen.append)

    await monitor.is_online()
    probe.online = False
    clock.advance(10)
    await monitor.is_online()
    clock.advance(10)
    await monitor.is_online()
    assert seen == [False]

    unsubscribe()
    probe.online = True
    clock.advance(10)
    await monitor.is_online()
    assert seen == [False]


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_monitor(monitor, probe, clock):
    def bad_listener(online):
        raise RuntimeError("listener bug")

    monitor.subscribe(bad_listener)
    await monitor.is_online()
    probe.online = False
    clock.advance(10)
    assert await monitor.is_online() is False
