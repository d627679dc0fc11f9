# groundstation_rf/core/modules/buc.py
"""
Block upconverter: modem IF -> C-band RF, RF = IF + LO.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from groundstation_rf.core.bus.models import RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback

logger = logging.getLogger(__name__)

AMBIENT_C = 25.0
REFERENCE_IF_INPUT_DBM = -10.0
OFF_GAIN_DB = -170.0
MAX_COMPRESSION_DB = 3.0

GAIN_RANGE_DB = (0.0, 70.0)
LO_RANGE_MHZ = (1000.0, 20000.0)

OVER_TEMP_C = 70.0
HIGH_CURRENT_A = 4.5
FREQ_ERROR_ALARM_HZ = 50_000.0


@dataclass
class SpuriousOutput:
    frequency: float        # Hz
    level: float            # dBc
    lo_harmonic: int
    if_harmonic: int


@dataclass
class BucState:
    is_powered: bool = True
    is_muted: bool = False
    is_loopback: bool = False
    temperature: float = AMBIENT_C          # C
    current_draw: float = 0.0               # A

    lo_frequency: float = 6425.0            # MHz
    is_ext_ref_locked: bool = True
    frequency_error: float = 0.0            # Hz
    phase_lock_range: float = 10_000.0      # Hz

    gain: float = 58.0                      # dB
    output_power: float = -10.0             # dBm
    saturation_power: float = 15.0          # dBm, P1dB
    gain_flatness: float = 0.5              # dB

    group_delay: float = 3.0                # ns
    phase_noise: float = -100.0             # dBc/Hz @ 10 kHz
    spurious_outputs: List[SpuriousOutput] = field(default_factory=list)
    noise_floor: float = -140.0             # dBm/Hz


class BucModule(RfModule[BucState]):
    name = "buc"
    TAG = "[BUC]"
    WATCHED_FIELDS = (
        "is_powered", "is_muted", "is_loopback", "lo_frequency", "is_ext_ref_locked",
        "gain", "output_power", "temperature", "current_draw",
    )

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        self.input_signals: List[RfSignal] = []
        self.output_signals: List[RfSignal] = []

    @classmethod
    def default_state(cls) -> BucState:
        return BucState()

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        self.input_signals = self._collect_inputs()
        self._update_ref_lock(dt)
        self._update_frequency_error()
        self._update_output_power()
        self._update_signal_quality()
        self._update_thermal_state(dt)

        self.output_signals = [
            s.derive(
                frequency=self.calculate_rf_frequency(s.frequency),
                power=self._signal_output_power(s.power),
                origin=SignalOrigin.BUC,
            )
            for s in self.input_signals
        ]

    def _collect_inputs(self) -> List[RfSignal]:
        fe = self.front_end
        if fe is None:
            return []
        out: List[RfSignal] = []
        for tx in fe.transmitters:
            for modem in tx.modems:
                if modem.is_transmitting and not modem.is_faulted and not modem.is_loopback:
                    out.append(modem.if_signal)
        return out

    def _update_frequency_error(self) -> None:
        st = self._state
        if st.is_ext_ref_locked and self.is_ext_ref_warmed_up():
            st.frequency_error = 0.0
            return
        # free-running LO wanders 10-100 ppm
        drift_ppm = float(self.rng.uniform(10.0, 100.0))
        direction = 1.0 if self.rng.random() > 0.5 else -1.0
        st.frequency_error = direction * st.lo_frequency * 1e6 * drift_ppm / 1e6

    def calculate_rf_frequency(self, if_frequency_hz: float) -> float:
        st = self._state
        lo_hz = st.lo_frequency * 1e6
        if st.is_ext_ref_locked and self.is_ext_ref_warmed_up():
            return if_frequency_hz + lo_hz
        return if_frequency_hz + lo_hz + st.frequency_error

    def _compress(self, linear_dbm: float) -> float:
        sat = self._state.saturation_power
        if linear_dbm >= sat:
            return linear_dbm - min((linear_dbm - sat) * 0.5, MAX_COMPRESSION_DB)
        return linear_dbm

    def _signal_output_power(self, input_dbm: float) -> float:
        st = self._state
        if not st.is_powered or st.is_muted:
            return input_dbm + OFF_GAIN_DB
        return self._compress(input_dbm + st.gain)

    def _update_output_power(self) -> None:
        st = self._state
        if not st.is_powered or st.is_muted:
            st.output_power = OFF_GAIN_DB
            return
        st.output_power = self._compress(REFERENCE_IF_INPUT_DBM + st.gain)

    def _update_signal_quality(self) -> None:
        st = self._state
        if not st.is_powered:
            st.phase_noise = 0.0
            st.group_delay = 0.0
            st.spurious_outputs = []
            return
        if st.is_ext_ref_locked:
            st.phase_noise = -100.0 - float(self.rng.uniform(0.0, 5.0))
        else:
            st.phase_noise = -70.0 - float(self.rng.uniform(0.0, 10.0))
        # 0.1 ns/C above ambient plus ripple
        st.group_delay = 3.0 + (st.temperature - AMBIENT_C) * 0.1 + float(self.rng.uniform(0.0, 2.0))
        st.spurious_outputs = self._spurious_products()

    def _spurious_products(self) -> List[SpuriousOutput]:
        lo_hz = self._state.lo_frequency * 1e6
        spurs: List[SpuriousOutput] = []
        for sig in self.input_signals:
            f_if = sig.frequency
            spurs.append(SpuriousOutput(2 * lo_hz - f_if, -30.0 - float(self.rng.uniform(0, 10)), 2, -1))
            spurs.append(SpuriousOutput(2 * lo_hz + f_if, -35.0 - float(self.rng.uniform(0, 10)), 2, 1))
            spurs.append(SpuriousOutput(3 * lo_hz - f_if, -40.0 - float(self.rng.uniform(0, 15)), 3, -1))
        return spurs

    def _update_thermal_state(self, dt: float) -> None:
        st = self._state
        dt = max(dt, 0.0)
        if not st.is_powered:
            st.temperature += (AMBIENT_C - st.temperature) * (1.0 - math.exp(-1e-4 * dt))
            st.current_draw = 0.0
            return

        # 0.8 C per dB of output above the -10 dBm reference
        target_temp = AMBIENT_C + max(0.0, st.output_power - REFERENCE_IF_INPUT_DBM) * 0.8
        st.temperature += (target_temp - st.temperature) * (1.0 - math.exp(-5e-4 * dt))

        idle = 0.5
        gain_current = (st.gain / 70.0) * 2.5
        # output stage draw saturates with the output power
        output_current = max(0.0, (min(st.output_power, st.saturation_power) + 10.0) / 20.0) * 1.5
        target_current = idle + gain_current + output_current
        st.current_draw += (target_current - st.current_draw) * (1.0 - math.exp(-1.0 * dt))

    # -------------------------------------------------
    # Queries
    # -------------------------------------------------
    def get_total_gain(self) -> float:
        st = self._state
        if not st.is_powered or st.is_muted:
            return OFF_GAIN_DB
        return st.gain

    def get_output_power(self, input_dbm: float) -> float:
        return self._signal_output_power(input_dbm)

    def get_compression_db(self) -> float:
        st = self._state
        if not st.is_powered or st.is_muted:
            return 0.0
        linear = REFERENCE_IF_INPUT_DBM + st.gain
        return linear - self._compress(linear)

    def get_frequency_stability_ppm(self) -> float:
        lo_hz = self._state.lo_frequency * 1e6
        if lo_hz == 0:
            return 0.0
        return self._state.frequency_error / lo_hz * 1e6

    def is_in_saturation(self) -> bool:
        return self._state.output_power >= self._state.saturation_power

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_power_toggle(self, is_powered: Optional[bool] = None, cb: StateCallback = None) -> None:
        st = self._state
        if is_powered is None:
            is_powered = not st.is_powered
        if not isinstance(is_powered, bool):
            logger.warning("[BUC] ignoring power toggle %r", is_powered)
            return
        st.is_powered = is_powered
        if not is_powered:
            st.is_ext_ref_locked = False
            self._lock_countdown.cancel()
            self._update_output_power()
        logger.info("[BUC] power %s", "on" if is_powered else "off")
        self._changed(cb)
        hpa = getattr(self.front_end, "hpa", None)
        if not is_powered and hpa is not None:
            hpa.trip_interlock()

    def handle_gain_change(self, gain: float, cb: StateCallback = None) -> None:
        v = self._checked_number("gain", gain, *GAIN_RANGE_DB)
        if v is None:
            return
        self._state.gain = v
        self._update_output_power()
        self._changed(cb)

    def handle_mute_toggle(self, is_muted: bool, cb: StateCallback = None) -> None:
        if not isinstance(is_muted, bool):
            logger.warning("[BUC] ignoring mute toggle %r", is_muted)
            return
        self._state.is_muted = is_muted
        self._update_output_power()
        self._changed(cb)

    def handle_lo_frequency_change(self, lo_mhz: float, cb: StateCallback = None) -> None:
        v = self._checked_number("lo_frequency", lo_mhz, *LO_RANGE_MHZ)
        if v is None:
            return
        self._state.lo_frequency = v
        self._changed(cb)

    def handle_loopback_toggle(self, is_loopback: bool, cb: StateCallback = None) -> None:
        if not isinstance(is_loopback, bool):
            logger.warning("[BUC] ignoring loopback toggle %r", is_loopback)
            return
        self._state.is_loopback = is_loopback
        logger.info("[BUC] loopback %s", "enabled" if is_loopback else "disabled")
        self._changed(cb)

    # -------------------------------------------------
    # Alarms
    # -------------------------------------------------
    def get_alarms(self) -> List[str]:
        st = self._state
        alarms: List[str] = []
        if not st.is_powered:
            return alarms
        if not st.is_ext_ref_locked and self.is_ext_ref_present():
            alarms.append("BUC not locked to reference")
        if not st.is_ext_ref_locked and abs(st.frequency_error) > FREQ_ERROR_ALARM_HZ:
            alarms.append(f"BUC frequency error: {st.frequency_error / 1000:.1f} kHz")
        if st.output_power > st.saturation_power - 2:
            alarms.append(f"BUC approaching saturation ({st.output_power:.1f} dBm)")
        if st.temperature > OVER_TEMP_C:
            alarms.append(f"BUC over-temperature ({st.temperature:.1f} °C)")
        if st.current_draw > HIGH_CURRENT_A:
            alarms.append(f"BUC high current draw ({st.current_draw:.2f} A)")
        if st.phase_noise > -85 and not st.is_ext_ref_locked:
            alarms.append("BUC phase noise degraded (unlocked)")
        return alarms
