import asyncio
import logging

import pytest

from groundstation_rf.core.bus.event_bus import Topic
from groundstation_rf.core.scheduler.tick_scheduler import TickScheduler


def test_step_drives_front_end_and_hooks(front_end):
    sched = TickScheduler(front_end, update_hz=10.0, sync_interval_s=1.0)
    seen = []
    sched.add_hook(seen.append)

    for _ in range(5):
        sched.step()

    assert sched.tick_count == 5
    assert seen == [0.1] * 5
    assert front_end.sim_time_s == pytest.approx(0.5)


def test_sync_published_on_interval(front_end):
    sched = TickScheduler(front_end, update_hz=10.0, sync_interval_s=1.0)
    snapshots = []
    front_end.bus.on(Topic.SYNC, snapshots.append)

    for _ in range(9):
        sched.step(0.1)
    assert snapshots == []
    sched.step(0.2)
    assert len(snapshots) == 1
    assert snapshots[0]["gpsdo"]["is_powered"] is True


def test_failing_update_is_logged_and_loop_continues(front_end, monkeypatch, caplog):
    sched = TickScheduler(front_end, update_hz=10.0)

    def boom(dt):
        raise RuntimeError("boom")

    monkeypatch.setattr(front_end, "update", boom)
    with caplog.at_level(logging.ERROR):
        sched.step()
        sched.step()

    assert sched.error_count == 2
    assert sched.tick_count == 2
    assert "[TICK] update failed" in caplog.text


def test_period_has_a_floor(front_end):
    assert TickScheduler(front_end, update_hz=0.0).period_s == 10.0
    assert TickScheduler(front_end, update_hz=20.0).period_s == 0.05


def test_start_stop_runs_on_the_event_loop(front_end):
    sched = TickScheduler(front_end, update_hz=100.0)

    async def go():
        await sched.start()
        assert sched.is_running()
        await sched.start()     # second start is a no-op
        await asyncio.sleep(0.1)
        await sched.stop()

    asyncio.run(go())
    assert not sched.is_running()
    assert sched.tick_count > 0
    assert front_end.sim_time_s > 0
