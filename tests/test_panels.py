"""Presentation adapters: status bar, LEDs, readout text."""

import pytest

from conftest import run
from groundstation_rf.api import panels
from groundstation_rf.core.bus.models import AlarmSeverity, AlarmStatus
from groundstation_rf.core.modules.coupler import CouplerModule, TapPoint
from groundstation_rf.core.receiver.receiver import Receiver
from groundstation_rf.core.rf_math import MIN_DB


def alarm(sev, msg):
    return AlarmStatus(AlarmSeverity(sev), msg)


def test_status_bar_normal():
    assert panels.status_bar([]) == {"text": "SYSTEM NORMAL", "class": "status-green"}


def test_status_bar_priority():
    alarms = [alarm("warning", "GNSS signal lost"), alarm("error", "BUC high current draw (4.80 A)"),
              alarm("warning", "GPSDO not locked")]
    assert panels.status_bar(alarms) == {"text": "BUC high current draw (4.80 A)", "class": "status-red"}

    warnings = [a for a in alarms if a.severity == AlarmSeverity.WARNING]
    assert panels.status_bar(warnings)["text"] == "GNSS signal lost, GPSDO not locked"

    off = [alarm("off", ""), alarm("error", "x")]
    assert panels.status_bar(off) == {"text": "", "class": "status-off"}


def test_status_led_ranks_off_below_warnings():
    assert panels.status_led([alarm("off", ""), alarm("warning", "w")]) == "led-amber"
    assert panels.status_led([alarm("off", "")]) == "led-warning"
    assert panels.status_led([]) == "led-green"


@pytest.mark.parametrize("remaining, text", [(0, "READY"), (600, "10:00"), (65, "1:05"), (9, "0:09")])
def test_warmup_text(remaining, text):
    assert panels.format_warmup_time(remaining) == text


def test_gpsdo_leds_through_power_cycle(front_end):
    gpsdo = front_end.gpsdo
    assert panels.gpsdo_lock_led(gpsdo.state) == "led-green"
    gpsdo.handle_power_toggle(False)
    assert panels.gpsdo_panel(gpsdo)["lock_led"] == "led-off"
    assert panels.gpsdo_panel(gpsdo)["warmup"] == "----"
    gpsdo.handle_power_toggle(True)
    p = panels.gpsdo_panel(gpsdo)
    assert p["lock_led"] == "led-amber"
    assert p["warm_led"] == "led-amber"
    assert p["warmup"] == "0:20"
    assert p["mode"] == "WARMING"


def test_power_meter_segments():
    assert panels.power_meter(0.0, 20.0) == ["led-off"] * 5
    assert panels.power_meter(20.0, 20.0) == ["led-green"] * 3 + ["led-yellow", "led-red"]
    assert panels.power_meter(13.0, 20.0) == ["led-green"] * 3 + ["led-off"] * 2


def test_front_end_summary(front_end):
    run(front_end, 6.0)
    summary = panels.front_end_summary(front_end)
    assert set(summary) >= {"gpsdo", "buc", "hpa", "omt", "lnb", "filter", "coupler", "cases"}
    for idx in (1, 2):
        assert summary["cases"][idx]["status"] == panels.status_bar(front_end.get_status_alarms(idx))
    assert summary["buc"]["lock_led"] == "led-green"
    assert summary["omt"]["rx_pol"] == "V"
    assert summary["coupler"]["signals_b"] == 1


def test_receiver_panel(front_end, antenna):
    rx = Receiver([antenna], front_end=front_end)
    p = panels.receiver_panel(rx)
    assert p["status"] == "SIGNAL FOUND"
    assert p["led"] == "led-green"
    assert p["frequency"] == "4700.0 MHz"


def test_unpowered_case_shows_blank_status(front_end):
    front_end.filter.sync({"is_powered": False})
    front_end.lnb.handle_power_toggle(False)
    front_end.gpsdo.handle_power_toggle(False)
    summary = panels.front_end_summary(front_end)
    assert summary["cases"][2]["status"] == {"text": "", "class": "status-off"}
    assert summary["cases"][2]["led"] == "led-warning"


def test_coupler_port_readouts(front_end):
    run(front_end, 6.0)
    p = panels.coupler_panel(front_end.coupler)
    (sig,) = front_end.coupler.output_b
    assert p["power_b_dbm"] == pytest.approx(sig.power, abs=0.06)
    bw = front_end.filter.state.bandwidth * 1e6
    expected = front_end.signal_path.displayed_noise_floor(TapPoint.RX_IF, bw, -20.0)
    assert p["noise_floor_b_dbm"] == pytest.approx(expected, abs=0.06)


def test_coupler_panel_without_front_end():
    p = panels.coupler_panel(CouplerModule())
    assert p["noise_floor_a_dbm"] is None
    assert p["power_a_dbm"] == MIN_DB


def test_lnb_noise_figure_readout(front_end):
    front_end.lnb.state.noise_temperature = 290.0
    assert panels.lnb_panel(front_end.lnb)["noise_figure_db"] == pytest.approx(3.01)


def test_buc_stability_and_saturation(front_end):
    buc = front_end.buc
    buc.state.frequency_error = 6425.0
    buc.state.output_power = buc.state.saturation_power + 1.0
    p = panels.buc_panel(buc)
    assert p["stability_ppm"] == pytest.approx(0.001)
    assert p["saturation_led"] == "led-red"

    buc.state.output_power = buc.state.saturation_power - 5.0
    assert panels.buc_panel(buc)["saturation_led"] == "led-off"
