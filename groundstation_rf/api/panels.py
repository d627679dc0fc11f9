# groundstation_rf/api/panels.py
"""
Read-only presentation adapters.

Turn module state into what a front panel shows: LED classes, readout text
and the bottom status bar. Nothing here mutates the front end.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from groundstation_rf.core.bus.models import AlarmSeverity, AlarmStatus
from groundstation_rf.core.rf_math import noise_temperature_to_figure_db, power_sum_dbm

LED_OFF = "led-off"
LED_GREEN = "led-green"
LED_AMBER = "led-amber"
LED_RED = "led-red"
LED_BLUE = "led-blue"
LED_ORANGE = "led-orange"

SYSTEM_NORMAL = "SYSTEM NORMAL"

# Status bar: first severity present wins
STATUS_PRIORITY: Tuple[Tuple[AlarmSeverity, str], ...] = (
    (AlarmSeverity.OFF, "status-off"),
    (AlarmSeverity.ERROR, "status-red"),
    (AlarmSeverity.WARNING, "status-amber"),
    (AlarmSeverity.INFO, "status-blue"),
    (AlarmSeverity.SUCCESS, "status-green"),
)

# Status LED ranks "off" below warnings
LED_PRIORITY: Tuple[Tuple[AlarmSeverity, str], ...] = (
    (AlarmSeverity.ERROR, LED_RED),
    (AlarmSeverity.WARNING, LED_AMBER),
    (AlarmSeverity.OFF, "led-warning"),
    (AlarmSeverity.INFO, LED_BLUE),
)


# -------------------------------------------------
# Status bar
# -------------------------------------------------
def status_bar(alarms: List[AlarmStatus]) -> Dict[str, str]:
    for severity, css in STATUS_PRIORITY:
        matches = [a.message for a in alarms if a.severity == severity]
        if matches:
            text = "" if severity == AlarmSeverity.OFF else ", ".join(matches)
            return {"text": text, "class": css}
    return {"text": SYSTEM_NORMAL, "class": "status-green"}


def status_led(alarms: List[AlarmStatus]) -> str:
    for severity, css in LED_PRIORITY:
        if any(a.severity == severity for a in alarms):
            return css
    return LED_GREEN


# -------------------------------------------------
# GPSDO
# -------------------------------------------------
def format_warmup_time(remaining_s: float) -> str:
    remaining = max(0, int(round(remaining_s)))
    if remaining == 0:
        return "READY"
    return f"{remaining // 60}:{remaining % 60:02d}"


def gpsdo_lock_led(st) -> str:
    if not st.is_powered:
        return LED_OFF
    if st.is_gnss_acquiring_lock:
        return LED_AMBER
    return LED_GREEN if st.is_locked else LED_RED


def gpsdo_gnss_led(st) -> str:
    if not st.is_powered:
        return LED_OFF
    if not st.gnss_signal_present:
        return LED_RED
    return LED_AMBER if st.satellite_count < 4 else LED_GREEN


def gpsdo_warmup_led(st) -> str:
    if not st.is_powered:
        return LED_OFF
    return LED_AMBER if st.warmup_time_remaining > 0 else LED_GREEN


def gpsdo_panel(gpsdo) -> Dict[str, Any]:
    st = gpsdo.state
    return {
        "mode": gpsdo.mode.value,
        "lock_led": gpsdo_lock_led(st),
        "gnss_led": gpsdo_gnss_led(st),
        "warm_led": gpsdo_warmup_led(st),
        "warmup": format_warmup_time(st.warmup_time_remaining) if st.is_powered else "----",
        "satellites": st.satellite_count if st.is_powered else 0,
        "temperature_c": round(st.temperature, 1),
        "holdover_error_us": round(st.holdover_error, 2),
    }


# -------------------------------------------------
# Converters and passives
# -------------------------------------------------
def ref_lock_led(st) -> str:
    if not st.is_powered:
        return LED_OFF
    return LED_GREEN if st.is_ext_ref_locked else LED_RED


def lnb_panel(lnb) -> Dict[str, Any]:
    st = lnb.state
    return {
        "lock_led": ref_lock_led(st),
        "noise_led": LED_BLUE if st.is_powered else LED_OFF,
        "lo_mhz": st.lo_frequency,
        "gain_db": st.gain,
        "noise_temperature_k": round(st.noise_temperature, 1),
        "noise_figure_db": round(noise_temperature_to_figure_db(st.noise_temperature), 2),
        "temperature_c": round(st.temperature, 1),
        "frequency_error_hz": round(st.frequency_error, 1),
    }


def buc_panel(buc) -> Dict[str, Any]:
    st = buc.state
    return {
        "lock_led": ref_lock_led(st),
        "mute_led": LED_AMBER if st.is_muted else LED_OFF,
        "loopback_led": LED_AMBER if st.is_loopback else LED_OFF,
        "saturation_led": LED_RED if st.is_powered and buc.is_in_saturation() else LED_OFF,
        "lo_mhz": st.lo_frequency,
        "gain_db": st.gain,
        "output_dbm": round(st.output_power, 1),
        "current_a": round(st.current_draw, 2),
        "stability_ppm": round(buc.get_frequency_stability_ppm(), 4),
        "temperature_c": round(st.temperature, 1),
    }


def power_meter(output_dbw: float, max_dbw: float, segments: int = 5) -> List[str]:
    """Bar graph: first three segments green, fourth yellow, last red."""
    pct = max(0.0, min(100.0, output_dbw / max_dbw * 100.0)) if max_dbw > 0 else 0.0
    out: List[str] = []
    for i in range(segments):
        if pct < (i + 1) * (100.0 / segments):
            out.append(LED_OFF)
        elif i < 3:
            out.append(LED_GREEN)
        elif i < 4:
            out.append("led-yellow")
        else:
            out.append(LED_RED)
    return out


def hpa_panel(hpa) -> Dict[str, Any]:
    st = hpa.state
    return {
        "enabled_led": LED_GREEN if st.is_hpa_enabled else LED_OFF,
        "imd_led": LED_ORANGE if st.is_overdriven else LED_OFF,
        "back_off_db": st.back_off,
        "output_dbm": round(st.output_power, 1),
        "imd_dbc": round(st.imd_level, 1),
        "temperature_c": round(st.temperature, 1),
        "meter": power_meter(st.output_power - 30.0, 20.0),
    }


def omt_panel(omt) -> Dict[str, Any]:
    st = omt.state
    return {
        "fault_led": LED_RED if st.is_faulted else LED_GREEN,
        "tx_pol": st.effective_tx_pol.value if st.effective_tx_pol else "--",
        "rx_pol": st.effective_rx_pol.value if st.effective_rx_pol else "--",
        "isolation_db": round(st.cross_pol_isolation, 1),
    }


def filter_panel(flt) -> Dict[str, Any]:
    st = flt.state
    return {
        "noise_led": LED_GREEN if st.is_powered else LED_OFF,
        "bandwidth_mhz": st.bandwidth,
        "insertion_loss_db": st.insertion_loss,
        "noise_floor_dbm": st.noise_floor,
    }


def _port_noise_floor(coupler, tap, coupling_db: float) -> Optional[float]:
    fe = coupler.front_end
    if fe is None:
        return None
    bandwidth_hz = fe.filter.state.bandwidth * 1e6
    return round(fe.signal_path.displayed_noise_floor(tap, bandwidth_hz, coupling_db), 1)


def coupler_panel(coupler) -> Dict[str, Any]:
    st = coupler.state
    return {
        "led_a": LED_GREEN if st.is_active_a else LED_OFF,
        "led_b": LED_GREEN if st.is_active_b else LED_OFF,
        "tap_a": st.tap_point_a.value,
        "tap_b": st.tap_point_b.value,
        "signals_a": len(coupler.output_a),
        "signals_b": len(coupler.output_b),
        "power_a_dbm": round(power_sum_dbm(s.power for s in coupler.output_a), 1),
        "power_b_dbm": round(power_sum_dbm(s.power for s in coupler.output_b), 1),
        "noise_floor_a_dbm": _port_noise_floor(coupler, st.tap_point_a, st.coupling_factor_a),
        "noise_floor_b_dbm": _port_noise_floor(coupler, st.tap_point_b, st.coupling_factor_b),
    }


# -------------------------------------------------
# Whole front end
# -------------------------------------------------
def front_end_summary(front_end) -> Dict[str, Any]:
    cases = {}
    for idx in (1, 2):
        alarms = front_end.get_status_alarms(idx)
        cases[idx] = {"status": status_bar(alarms), "led": status_led(alarms)}
    return {
        "uuid": front_end.uuid,
        "sim_time_s": round(front_end.sim_time_s, 3),
        "system_noise_figure_db": round(front_end.system_noise_figure, 2),
        "cases": cases,
        "gpsdo": gpsdo_panel(front_end.gpsdo),
        "buc": buc_panel(front_end.buc),
        "hpa": hpa_panel(front_end.hpa),
        "omt": omt_panel(front_end.omt),
        "lnb": lnb_panel(front_end.lnb),
        "filter": filter_panel(front_end.filter),
        "coupler": coupler_panel(front_end.coupler),
    }


def receiver_panel(receiver, modem_number: Optional[int] = None) -> Dict[str, Any]:
    modem = receiver.get_modem(modem_number)
    result = receiver.get_visible_signals(modem_number)
    return {
        "modem": modem.modem_number,
        "powered": modem.is_powered,
        "led": receiver.get_led_color(modem_number),
        "status": result.status.value,
        "frequency": f"{modem.frequency} MHz",
        "bandwidth": f"{modem.bandwidth} MHz",
        "modulation": modem.modulation,
        "fec": modem.fec,
        "signals": [s.signal.id for s in result.signals],
    }
