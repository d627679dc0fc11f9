# groundstation_rf/core/modules/lnb.py
"""
Low-noise block downconverter: RF -> L-band IF, high-side LO injection.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from groundstation_rf.core.bus.models import RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback
from groundstation_rf.core.rf_math import (
    MIN_DB,
    friis_noise_factor,
    noise_factor_to_temperature,
    thermal_noise_floor_dbm,
)

logger = logging.getLogger(__name__)

IF_BAND_LOW_HZ = 950e6
IF_BAND_HIGH_HZ = 2150e6
OUT_OF_BAND_REJECTION_DB = 40.0

AMBIENT_C = 25.0
OPERATING_C = 50.0
TEMP_COEFF_PPM_PER_C = 0.5
OFF_NOISE_TEMP_K = 290.0
OFF_GAIN_DB = -300.0

GAIN_RANGE_DB = (0.0, 70.0)
LO_RANGE_MHZ = (1000.0, 20000.0)


@dataclass
class LnbState:
    is_powered: bool = True
    lo_frequency: float = 6080.0                     # MHz
    gain: float = 55.0                               # dB
    lna_noise_figure: float = 0.6                    # dB
    mixer_noise_figure: float = 16.0                 # dB
    noise_temperature: float = 45.0                  # K
    noise_temperature_stabilization_time: float = 150.0   # s
    temperature: float = AMBIENT_C                   # C, physical
    thermal_stabilization_time: float = 150.0       # s
    frequency_error: float = 0.0                     # Hz
    is_ext_ref_locked: bool = True
    noise_floor: float = -140.0                      # dBm/Hz


def nominal_noise_temperature(lna_nf_db: float, mixer_nf_db: float, lna_gain_db: float) -> float:
    """T = 290 * (F_lna + (F_mixer - 1)/G_lna - 1). Gains at or below 0 dB count as unity."""
    g = lna_gain_db if lna_gain_db > 0 else 0.0
    return noise_factor_to_temperature(friis_noise_factor([(lna_nf_db, g), (mixer_nf_db, 0.0)]))


class LnbModule(RfModule[LnbState]):
    name = "lnb"
    TAG = "[LNB]"
    WATCHED_FIELDS = (
        "is_powered", "lo_frequency", "gain", "noise_temperature", "temperature",
        "frequency_error", "is_ext_ref_locked",
    )

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        # seconds since power-on; None means already settled
        self._powered_for_s: Optional[float] = None
        self.rx_signals_in: List[RfSignal] = []
        self.post_lna_signals: List[RfSignal] = []
        self.if_signals: List[RfSignal] = []

    @classmethod
    def default_state(cls) -> LnbState:
        return LnbState()

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        if self._state.is_powered and self._powered_for_s is not None:
            self._powered_for_s += max(dt, 0.0)

        self._update_thermal_state()
        self._update_noise_temperature()
        self._update_ref_lock(dt)
        self._update_frequency_drift()
        self._state.noise_floor = self.get_noise_floor(1.0)
        self._process_signals()

    def _settle_factor(self, stabilization_s: float) -> float:
        """exp(-t/tau), tau = stabilization/3. 0 once settled."""
        t = self._powered_for_s
        if t is None or stabilization_s <= 0 or t >= stabilization_s:
            return 0.0
        return math.exp(-t / (stabilization_s / 3.0))

    def _update_thermal_state(self) -> None:
        st = self._state
        if not st.is_powered:
            st.temperature = AMBIENT_C
            return
        k = self._settle_factor(st.thermal_stabilization_time)
        st.temperature = OPERATING_C - (OPERATING_C - AMBIENT_C) * k

    def _update_noise_temperature(self) -> None:
        st = self._state
        if not st.is_powered:
            st.noise_temperature = OFF_NOISE_TEMP_K
            return
        nominal = nominal_noise_temperature(st.lna_noise_figure, st.mixer_noise_figure, st.gain)
        k = self._settle_factor(st.noise_temperature_stabilization_time)
        # cold start at twice nominal
        st.noise_temperature = nominal + nominal * k

    def _update_frequency_drift(self) -> None:
        st = self._state
        if st.is_ext_ref_locked and self.is_ext_ref_warmed_up():
            st.frequency_error = 0.0
            return
        temp_drift_ppm = abs(st.temperature - OPERATING_C) * TEMP_COEFF_PPM_PER_C
        aging_drift_ppm = 1.0 + float(self.rng.uniform(0.0, 2.0))
        direction = -1.0 if st.temperature < OPERATING_C else 1.0
        st.frequency_error = direction * st.lo_frequency * 1e6 * (temp_drift_ppm + aging_drift_ppm) / 1e6

    # -------------------------------------------------
    # Signal path
    # -------------------------------------------------
    def _collect_inputs(self) -> List[RfSignal]:
        fe = self.front_end
        if fe is None:
            return []
        signals = list(fe.omt.rx_signals_out)
        if fe.buc.state.is_loopback:
            signals.extend(fe.buc.output_signals)
        return signals

    def _process_signals(self) -> None:
        self.rx_signals_in = self._collect_inputs()
        gain = self._state.gain if self._state.is_powered else OFF_GAIN_DB
        self.post_lna_signals = [
            s.derive(power=s.power + gain, origin=SignalOrigin.LNB) for s in self.rx_signals_in
        ]
        self.if_signals = [self._to_if(s) for s in self.post_lna_signals]

    def _to_if(self, sig: RfSignal) -> RfSignal:
        if_freq = self.calculate_if_frequency(sig.frequency)
        power = sig.power
        half_bw = sig.bandwidth / 2.0
        if if_freq < IF_BAND_LOW_HZ or if_freq > IF_BAND_HIGH_HZ:
            power -= OUT_OF_BAND_REJECTION_DB
        elif sig.bandwidth > 0 and if_freq - half_bw < IF_BAND_LOW_HZ:
            outside = (IF_BAND_LOW_HZ - (if_freq - half_bw)) / sig.bandwidth
            power -= OUT_OF_BAND_REJECTION_DB * outside
        elif sig.bandwidth > 0 and if_freq + half_bw > IF_BAND_HIGH_HZ:
            outside = ((if_freq + half_bw) - IF_BAND_HIGH_HZ) / sig.bandwidth
            power -= OUT_OF_BAND_REJECTION_DB * outside
        return sig.derive(frequency=if_freq, power=power, origin=SignalOrigin.LNB)

    def calculate_if_frequency(self, rf_frequency_hz: float) -> float:
        st = self._state
        return st.lo_frequency * 1e6 + st.frequency_error - rf_frequency_hz

    def get_noise_floor(self, bandwidth_hz: float) -> float:
        return thermal_noise_floor_dbm(self._state.noise_temperature, bandwidth_hz)

    def get_total_gain(self) -> float:
        return self._state.gain if self._state.is_powered else OFF_GAIN_DB

    def get_output_power(self, input_dbm: float) -> float:
        if not self._state.is_powered:
            return MIN_DB
        return input_dbm + self._state.gain

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_power_toggle(self, is_powered: Optional[bool] = None, cb: StateCallback = None) -> None:
        st = self._state
        if is_powered is None:
            is_powered = not st.is_powered
        if not isinstance(is_powered, bool):
            logger.warning("[LNB] ignoring power toggle %r", is_powered)
            return
        was_powered = st.is_powered
        st.is_powered = is_powered
        if is_powered and not was_powered:
            self._powered_for_s = 0.0
            logger.info("[LNB] power on, stabilizing")
        elif not is_powered:
            self._powered_for_s = None
            st.is_ext_ref_locked = False
            self._lock_countdown.cancel()
            logger.info("[LNB] power off")
        self._update_thermal_state()
        self._update_noise_temperature()
        self._changed(cb)

    def handle_gain_change(self, gain: float, cb: StateCallback = None) -> None:
        v = self._checked_number("gain", gain, *GAIN_RANGE_DB)
        if v is None:
            return
        self._state.gain = v
        self._update_noise_temperature()
        self._changed(cb)

    def handle_lo_frequency_change(self, lo_mhz: float, cb: StateCallback = None) -> None:
        v = self._checked_number("lo_frequency", lo_mhz, *LO_RANGE_MHZ)
        if v is None:
            return
        self._state.lo_frequency = v
        self._changed(cb)

    # -------------------------------------------------
    # Alarms
    # -------------------------------------------------
    def get_alarms(self) -> List[str]:
        st = self._state
        alarms: List[str] = []
        if st.is_powered and not st.is_ext_ref_locked and self.is_ext_ref_present():
            alarms.append("LNB not locked to reference")
        if st.is_powered and st.noise_temperature > 100:
            alarms.append(f"LNB noise temperature high ({st.noise_temperature:.0f}K)")
        if st.lna_noise_figure > 1.0:
            alarms.append(f"LNB noise figure degraded ({st.lna_noise_figure:.2f} dB)")
        return alarms
