"""
GPSDO reference state machine: warmup, GNSS acquisition, lock, holdover.
All time is simulated; dt is chosen so every test runs instantly.
"""

import numpy as np

from groundstation_rf.core.modules.gpsdo import (
    COLD_ACCURACY,
    LOCKED_ACCURACY,
    GpsdoMode,
    GpsdoModule,
)

WARMUP_S = 20.0


def make_gpsdo(seed=1, **state):
    return GpsdoModule(state=state or None, rng=np.random.default_rng(seed), warmup_total_s=WARMUP_S)


def run(gpsdo, seconds, dt=0.1, check=None):
    for _ in range(int(round(seconds / dt))):
        gpsdo.update(dt)
        if check:
            check(gpsdo)


def assert_lock_invariant(gpsdo):
    st = gpsdo.state
    if st.is_locked:
        assert st.is_powered
        assert st.warmup_time_remaining == 0


def test_default_state_is_locked_and_warm():
    gpsdo = make_gpsdo()
    gpsdo.update(0.1)
    assert gpsdo.mode == GpsdoMode.LOCKED
    assert gpsdo.is_output_stable()
    out = gpsdo.get_10mhz_output()
    assert out.is_present and out.is_warmed_up
    assert gpsdo.get_reference_status().is_locked
    assert gpsdo.get_alarms() == []


def test_power_off_clears_everything():
    gpsdo = make_gpsdo()
    gpsdo.handle_power_toggle(False)
    st = gpsdo.state
    assert not st.is_locked
    assert not st.is_in_holdover
    assert st.satellite_count == 0
    assert st.frequency_accuracy == 999.0
    assert gpsdo.mode == GpsdoMode.OFF
    assert not gpsdo.get_10mhz_output().is_present
    # powered-off unit raises nothing
    assert gpsdo.get_alarms() == []


def test_power_on_warms_up_then_locks():
    gpsdo = make_gpsdo()
    gpsdo.handle_power_toggle(False)
    gpsdo.handle_power_toggle(True)

    st = gpsdo.state
    assert st.warmup_time_remaining == WARMUP_S
    assert st.is_gnss_acquiring_lock
    assert gpsdo.mode == GpsdoMode.WARMING

    run(gpsdo, WARMUP_S / 2, check=assert_lock_invariant)
    assert not st.is_locked
    assert 0 < st.warmup_time_remaining < WARMUP_S

    run(gpsdo, WARMUP_S, check=assert_lock_invariant)
    assert st.warmup_time_remaining == 0
    assert st.is_locked
    assert st.gnss_signal_present
    assert 4 <= st.satellite_count <= 12
    print("[OK] locked after warmup")


def test_warmup_interpolates_signal_quality():
    gpsdo = make_gpsdo()
    gpsdo.handle_power_toggle(False)
    gpsdo.handle_power_toggle(True)
    run(gpsdo, WARMUP_S / 2)

    st = gpsdo.state
    assert LOCKED_ACCURACY < st.frequency_accuracy < COLD_ACCURACY
    assert -127.0 < st.phase_noise < -80.0


def test_lock_invariant_under_random_toggles():
    rng = np.random.default_rng(42)
    gpsdo = make_gpsdo(seed=7)
    for _ in range(400):
        action = rng.integers(0, 6)
        if action == 0:
            gpsdo.handle_power_toggle(bool(rng.integers(0, 2)))
        elif action == 1:
            gpsdo.handle_gnss_toggle(bool(rng.integers(0, 2)))
        gpsdo.update(float(rng.uniform(0.0, 3.0)))
        assert_lock_invariant(gpsdo)


def test_gnss_loss_enters_holdover_and_error_grows():
    gpsdo = make_gpsdo()
    gpsdo.handle_gnss_toggle(False)

    st = gpsdo.state
    assert st.is_in_holdover
    assert not st.is_locked
    assert gpsdo.mode == GpsdoMode.HOLDOVER

    last = st.holdover_error
    for _ in range(50):
        gpsdo.update(60.0)
        assert st.holdover_error > last
        last = st.holdover_error
    assert any("holdover" in a for a in gpsdo.get_alarms())


def test_holdover_resets_on_reacquisition():
    gpsdo = make_gpsdo()
    gpsdo.handle_gnss_toggle(False)
    run(gpsdo, 120.0, dt=1.0)
    assert gpsdo.state.holdover_error > 0

    gpsdo.handle_gnss_toggle(True)
    run(gpsdo, 10.0)

    st = gpsdo.state
    assert not st.is_in_holdover
    assert st.holdover_duration == 0
    assert st.holdover_error == 0
    assert st.is_locked


def test_holdover_limit_alarm():
    gpsdo = make_gpsdo()
    gpsdo.handle_gnss_toggle(False)
    for _ in range(25):
        gpsdo.update(3600.0)

    assert gpsdo.state.holdover_error > 40.0
    assert "GPSDO holdover limit exceeded (>40 μs)" in gpsdo.get_alarms()


def test_gnss_callback_fires_after_acquisition_delay():
    gpsdo = make_gpsdo()
    gpsdo.handle_gnss_toggle(False)
    calls = []
    gpsdo.handle_gnss_toggle(True, cb=calls.append)
    assert calls == []

    run(gpsdo, 2.0)
    assert calls == []
    run(gpsdo, 5.0)
    assert len(calls) == 1
    assert calls[0].gnss_signal_present


def test_invalid_toggle_is_ignored():
    gpsdo = make_gpsdo()
    gpsdo.handle_power_toggle("yes")
    assert gpsdo.state.is_powered


def test_sync_clamps_warmup():
    gpsdo = make_gpsdo()
    gpsdo.sync({"warmup_time_remaining": 1e9, "is_locked": True})
    assert gpsdo.state.warmup_time_remaining == WARMUP_S
    assert not gpsdo.state.is_locked
