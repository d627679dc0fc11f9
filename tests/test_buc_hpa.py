"""Transmit chain: BUC upconversion/compression and the HPA interlock."""

import numpy as np
import pytest

from conftest import run
from groundstation_rf.core.bus.event_bus import Topic
from groundstation_rf.core.bus.models import AlarmSeverity
from groundstation_rf.core.modules.buc import BucModule
from groundstation_rf.core.modules.hpa import HpaModule

INTERLOCK_ALARM = "HPA enabled without BUC power"


# -------------------------------------------------
# BUC
# -------------------------------------------------
def test_buc_upconverts_if_plus_lo(front_end):
    run(front_end, 0.5)
    buc = front_end.buc
    assert len(buc.output_signals) == 1
    assert buc.output_signals[0].frequency == pytest.approx(1200e6 + 6425e6)


@pytest.mark.parametrize("gain, expected", [
    (20.0, 10.0),   # linear, below P1dB
    (25.0, 15.0),   # exactly at P1dB, no excess yet
    (27.0, 16.0),   # 2 dB over -> 1 dB compression
    (70.0, 57.0),   # compression capped at 3 dB
])
def test_buc_compression(gain, expected):
    buc = BucModule(rng=np.random.default_rng(0))
    buc.handle_gain_change(gain)
    assert buc.state.output_power == pytest.approx(expected)
    assert buc.get_compression_db() == pytest.approx(-10.0 + gain - expected)


def test_buc_mute_kills_output_but_stays_powered(front_end):
    front_end.buc.handle_mute_toggle(True)
    run(front_end, 0.5)
    buc = front_end.buc
    assert buc.state.is_powered
    assert buc.state.output_power == -170.0
    assert buc.output_signals[0].power == pytest.approx(-10.0 - 170.0)


def test_buc_unlocked_without_reference(front_end):
    front_end.gpsdo.handle_power_toggle(False)
    run(front_end, 0.5)
    st = front_end.buc.state
    assert not st.is_ext_ref_locked
    # 10-100 ppm of 6425 MHz
    assert 64_250.0 <= abs(st.frequency_error) <= 642_500.0
    assert any(a.startswith("BUC frequency error") for a in front_end.buc.get_alarms())


def test_buc_loopback_feeds_lnb_not_hpa(front_end):
    front_end.buc.handle_loopback_toggle(True)
    run(front_end, 0.5)
    assert front_end.hpa.input_signals == []
    looped = [s for s in front_end.lnb.rx_signals_in if s.frequency == pytest.approx(7625e6)]
    assert len(looped) == 1


def test_buc_ignores_modems_that_are_not_transmitting(front_end, transmitter):
    transmitter.modems[0].is_transmitting = False
    run(front_end, 0.2)
    assert front_end.buc.input_signals == []


# -------------------------------------------------
# HPA
# -------------------------------------------------
def test_hpa_compression_boundary():
    hpa = HpaModule()
    target = hpa.p1db - hpa.state.back_off

    assert hpa.get_output_power(-50.0) == pytest.approx(0.0)

    # never more than target once the input climbs toward it
    for input_dbm in np.arange(-50.0, target + 0.01, 0.25):
        assert hpa.get_output_power(float(input_dbm)) <= target + 1e-9
    # just past the knee the gain falls 1:1
    knee = target - 3.0
    assert hpa.calculate_gain(knee + 1.0) == pytest.approx(target - (knee + 1.0) - 1.0)


def test_hpa_output_power_and_imd(front_end):
    front_end.hpa.handle_hpa_toggle()
    front_end.hpa.handle_back_off_change(2.0)
    run(front_end, 0.2)
    st = front_end.hpa.state
    assert st.is_hpa_enabled
    assert st.output_power == pytest.approx(48.0)
    assert st.imd_level == pytest.approx(-34.0)
    assert st.is_overdriven
    assert "HPA overdrive - IMD degradation" in front_end.hpa.get_alarms()
    assert len(front_end.hpa.output_signals) == 1


def test_hpa_temperature_follows_dissipation(front_end):
    front_end.hpa.handle_hpa_toggle()
    run(front_end, 0.2)
    watts = front_end.hpa.get_output_watts()
    assert front_end.hpa.state.temperature == pytest.approx(25.0 + watts * 0.5 * 10.0)


def test_interlock_forces_hpa_off(front_end):
    front_end.hpa.handle_hpa_toggle()
    front_end.buc.handle_power_toggle(False)
    run(front_end, 0.1)

    st = front_end.hpa.state
    assert not st.is_powered
    assert not st.is_hpa_enabled
    alarms = front_end.get_alarms()
    assert any(a.message == INTERLOCK_ALARM and a.severity == AlarmSeverity.WARNING for a in alarms)

    front_end.hpa.handle_power_toggle(True)
    assert not front_end.hpa.state.is_powered


def test_buc_power_off_trips_interlock_without_a_tick(front_end):
    front_end.hpa.handle_hpa_toggle()
    front_end.update(0.1)
    assert front_end.hpa.output_signals
    changes = []
    front_end.bus.on(Topic.MODULE_CHANGED, changes.append)

    front_end.buc.handle_power_toggle(False)

    st = front_end.hpa.state
    assert not st.is_powered
    assert not st.is_hpa_enabled
    assert st.output_power == -90.0
    assert st.gain == -120.0
    assert front_end.hpa.output_signals == []
    assert [c.module for c in changes] == ["buc", "hpa"]


def test_interlock_holds_over_random_sequences(front_end):
    rng = np.random.default_rng(99)
    actions = [
        lambda: front_end.buc.handle_power_toggle(bool(rng.integers(0, 2))),
        lambda: front_end.hpa.handle_power_toggle(bool(rng.integers(0, 2))),
        lambda: front_end.hpa.handle_hpa_toggle(),
        lambda: front_end.sync({"hpa": {"is_powered": True, "is_hpa_enabled": True}}),
    ]
    hpa, buc = front_end.hpa.state, front_end.buc.state
    for _ in range(300):
        actions[int(rng.integers(0, len(actions)))]()
        # between ticks as well as after them
        assert not (hpa.is_powered and not buc.is_powered)
        front_end.update(0.1)
        assert not (hpa.is_powered and not buc.is_powered)
        assert not (hpa.is_hpa_enabled and not buc.is_powered)


def test_sync_cannot_load_an_interlock_violation(front_end):
    front_end.sync({"buc": {"is_powered": False}, "hpa": {"is_powered": True, "is_hpa_enabled": True}})
    assert not front_end.hpa.state.is_powered
    assert front_end.hpa.interlock_tripped
