# groundstation_rf/core/modules/hpa.py
"""
Solid-state high-power amplifier with a P1dB compression model.

The BUC interlock is re-checked on every tick: the amplifier is forced off
whenever the upconverter feeding it has no power.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from groundstation_rf.core.bus.models import RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback
from groundstation_rf.core.rf_math import dbm_to_watts

logger = logging.getLogger(__name__)

P1DB_DBM = 50.0             # 100 W
MAX_OUTPUT_DBM = 53.0       # 200 W
BACK_OFF_RANGE_DB = (0.0, 30.0)
MAX_GAIN_DB = 50.0
COMPRESSION_KNEE_DB = 3.0
THERMAL_EFFICIENCY = 0.5
AMBIENT_C = 25.0
OFF_OUTPUT_DBM = -90.0
OFF_GAIN_DB = -120.0
OVER_TEMP_C = 85.0


@dataclass
class HpaState:
    is_powered: bool = True
    back_off: float = 6.0               # dB below P1dB
    output_power: float = 50.0          # dBm
    is_overdriven: bool = False
    imd_level: float = -30.0            # dBc
    temperature: float = 45.0           # C
    is_hpa_enabled: bool = False
    is_hpa_switch_enabled: bool = False
    noise_floor: float = -140.0         # dBm/Hz
    gain: float = 44.0                  # dB


class HpaModule(RfModule[HpaState]):
    name = "hpa"
    TAG = "[HPA]"
    WATCHED_FIELDS = (
        "is_powered", "back_off", "output_power", "is_overdriven", "imd_level",
        "temperature", "is_hpa_enabled", "is_hpa_switch_enabled", "gain",
    )

    p1db = P1DB_DBM
    max_output_power = MAX_OUTPUT_DBM

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        self.input_signals: List[RfSignal] = []
        self.output_signals: List[RfSignal] = []
        self.interlock_tripped = False

    @classmethod
    def default_state(cls) -> HpaState:
        return HpaState()

    def _buc_powered(self) -> bool:
        fe = self.front_end
        return bool(fe is not None and fe.buc.state.is_powered)

    # -------------------------------------------------
    # Interlock
    # -------------------------------------------------
    def enforce_interlock(self) -> bool:
        """Force the amplifier off without BUC power. Returns True if it tripped now."""
        st = self._state
        if self._buc_powered():
            self.interlock_tripped = False
            return False
        if st.is_powered or st.is_hpa_enabled:
            st.is_powered = False
            st.is_hpa_enabled = False
            st.is_hpa_switch_enabled = False
            self.interlock_tripped = True
            logger.warning("[HPA] interlock: BUC unpowered, HPA forced off")
            return True
        return False

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        self.enforce_interlock()
        self._update_output_power()
        self._update_temperature()
        self._update_imd()
        self._process_signals()

    def trip_interlock(self) -> bool:
        """Interlock check between ticks, for upstream power changes."""
        if not self.enforce_interlock():
            return False
        self._update_output_power()
        self._update_imd()
        self._process_signals()
        self._changed()
        return True

    def _update_output_power(self) -> None:
        st = self._state
        if st.is_powered and st.is_hpa_enabled:
            st.output_power = self.p1db - st.back_off
        else:
            st.output_power = OFF_OUTPUT_DBM

    def _update_temperature(self) -> None:
        st = self._state
        if not st.is_powered:
            st.temperature = AMBIENT_C
            return
        dissipated_w = dbm_to_watts(st.output_power) * (1.0 - THERMAL_EFFICIENCY)
        st.temperature = AMBIENT_C + dissipated_w * 10.0

    def _update_imd(self) -> None:
        st = self._state
        if st.is_powered:
            # ~2 dB IMD improvement per dB of back-off
            st.imd_level = -30.0 - st.back_off * 2.0
            st.is_overdriven = st.back_off < COMPRESSION_KNEE_DB
        else:
            st.imd_level = -60.0
            st.is_overdriven = False

    def _collect_inputs(self) -> List[RfSignal]:
        fe = self.front_end
        if fe is None or fe.buc.state.is_loopback:
            return []
        return list(fe.buc.output_signals)

    def _process_signals(self) -> None:
        st = self._state
        self.input_signals = self._collect_inputs()
        if not st.is_powered or not st.is_hpa_enabled:
            self.output_signals = []
            st.gain = OFF_GAIN_DB
            return
        gains = [self.calculate_gain(s.power) for s in self.input_signals]
        self.output_signals = [
            s.derive(power=s.power + g, origin=SignalOrigin.HPA)
            for s, g in zip(self.input_signals, gains)
        ]
        st.gain = max(gains) if gains else 0.0

    def calculate_gain(self, input_dbm: float) -> float:
        """
        Gain that drives the input toward P1dB - back_off, capped at 50 dB.
        Above (target - 3 dB) of input the gain drops 1:1 with the overdrive.
        """
        st = self._state
        if not st.is_powered:
            return OFF_GAIN_DB
        target = self.p1db - st.back_off
        gain = min(target - input_dbm, MAX_GAIN_DB)
        knee = target - COMPRESSION_KNEE_DB
        if input_dbm > knee:
            gain -= input_dbm - knee
        return max(gain, 0.0)

    def get_output_power(self, input_dbm: float) -> float:
        if not self._state.is_powered:
            return OFF_GAIN_DB
        return input_dbm + self.calculate_gain(input_dbm)

    def get_total_gain(self) -> float:
        if not self._state.is_powered:
            return OFF_GAIN_DB
        fe = self.front_end
        ref_input = fe.buc.state.output_power if fe is not None else OFF_OUTPUT_DBM
        return self.calculate_gain(ref_input)

    def get_output_watts(self) -> float:
        return dbm_to_watts(self._state.output_power)

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_power_toggle(self, is_powered: bool, cb: StateCallback = None) -> None:
        st = self._state
        if not isinstance(is_powered, bool):
            logger.warning("[HPA] ignoring power toggle %r", is_powered)
            return
        if is_powered and not self._buc_powered():
            logger.warning("[HPA] power-on refused, BUC is off")
            st.is_powered = False
        else:
            st.is_powered = is_powered
        if not st.is_powered:
            st.is_hpa_enabled = False
            st.is_hpa_switch_enabled = False
        self._update_output_power()
        self._changed(cb)

    def handle_back_off_change(self, back_off: float, cb: StateCallback = None) -> None:
        v = self._checked_number("back_off", back_off, *BACK_OFF_RANGE_DB)
        if v is None:
            return
        self._state.back_off = v
        self._update_output_power()
        self._update_imd()
        self._changed(cb)

    def handle_hpa_toggle(self, cb: StateCallback = None) -> None:
        st = self._state
        if not st.is_powered:
            logger.info("[HPA] RF enable ignored, amplifier unpowered")
            return
        st.is_hpa_switch_enabled = not st.is_hpa_switch_enabled
        st.is_hpa_enabled = st.is_hpa_switch_enabled
        logger.info("[HPA] RF output %s", "enabled" if st.is_hpa_enabled else "disabled")
        self._update_output_power()
        self._changed(cb)

    # -------------------------------------------------
    # Alarms
    # -------------------------------------------------
    def get_alarms(self) -> List[str]:
        st = self._state
        alarms: List[str] = []
        if st.is_overdriven and st.is_powered:
            alarms.append("HPA overdrive - IMD degradation")
        if st.temperature > OVER_TEMP_C:
            alarms.append(f"HPA over-temperature ({st.temperature:.0f}°C)")
        if self.interlock_tripped or (st.is_powered and not self._buc_powered()):
            alarms.append("HPA enabled without BUC power")
        return alarms
