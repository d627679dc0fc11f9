# groundstation_rf/core/orchestrator/signal_path.py
"""
Read-only view over the front end's signal chain: carriers, cumulative gain
and noise floor at each coupler tap point. Owns no state.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from groundstation_rf.core.bus.models import RfSignal
from groundstation_rf.core.modules.coupler import TapPoint
from groundstation_rf.core.rf_math import KTB_DBM_HZ_AT_T0

ANALYZER_NOISE_FIGURE_DB = 0.5
NO_PATH = float("-inf")


@dataclass(frozen=True)
class NoiseFloorReading:
    noise_floor: float          # dBm, without downstream gain
    apply_gain: bool            # caller should add get_total_gain_to(tap)


@dataclass(frozen=True)
class IfRxNoiseFloor:
    is_internal_noise_greater: bool
    noise_floor: float


def analyzer_noise_floor(bandwidth_hz: float) -> float:
    if bandwidth_hz <= 0:
        return NO_PATH
    return KTB_DBM_HZ_AT_T0 + 10.0 * math.log10(bandwidth_hz) + ANALYZER_NOISE_FIGURE_DB


class SignalPathManager:
    def __init__(self, front_end):
        self.front_end = front_end

    # -------------------------------------------------
    # Carriers per stage
    # -------------------------------------------------
    @property
    def antenna_rx_signals(self) -> List[RfSignal]:
        return list(self.front_end.omt.rx_signals_in)

    @property
    def omt_rx_signals(self) -> List[RfSignal]:
        return list(self.front_end.omt.rx_signals_out)

    @property
    def lna_rx_signals(self) -> List[RfSignal]:
        return list(self.front_end.lnb.post_lna_signals)

    @property
    def lnb_if_signals(self) -> List[RfSignal]:
        return list(self.front_end.lnb.if_signals)

    @property
    def if_filter_rx_signals(self) -> List[RfSignal]:
        return list(self.front_end.filter.output_signals)

    def signals_at(self, tap: TapPoint) -> List[RfSignal]:
        fe = self.front_end
        if tap == TapPoint.TX_IF:
            return list(fe.buc.input_signals)
        if tap == TapPoint.TX_RF_POST_BUC:
            return list(fe.buc.output_signals)
        if tap == TapPoint.TX_RF_POST_HPA:
            return list(fe.hpa.output_signals)
        if tap == TapPoint.TX_RF_POST_OMT:
            return list(fe.omt.tx_signals_out)
        if tap == TapPoint.RX_RF_PRE_OMT:
            return self.antenna_rx_signals
        if tap == TapPoint.RX_RF_POST_OMT:
            return self.omt_rx_signals
        if tap == TapPoint.RX_RF_POST_LNA:
            return self.lna_rx_signals
        if tap == TapPoint.RX_IF:
            return self.if_filter_rx_signals
        return []

    # -------------------------------------------------
    # Gain
    # -------------------------------------------------
    def get_total_rx_gain(self) -> float:
        """LNB gain less IF filter insertion loss."""
        st = self.front_end.state
        return st.lnb.gain - st.filter.insertion_loss

    def get_external_noise(self) -> float:
        return self.front_end.filter.state.noise_floor + self.get_total_rx_gain()

    def _antenna_up(self) -> bool:
        antenna = self.front_end.antenna
        return antenna is not None and antenna.is_powered

    def get_total_gain_to(self, tap: TapPoint) -> float:
        fe = self.front_end
        omt_loss = fe.omt.state.insertion_loss
        if tap == TapPoint.RX_RF_PRE_OMT:
            return 0.0 if self._antenna_up() else NO_PATH
        if tap == TapPoint.RX_RF_POST_OMT:
            if not (self._antenna_up() and fe.omt.state.is_powered):
                return NO_PATH
            return -omt_loss
        if tap == TapPoint.RX_RF_POST_LNA:
            if not (self._antenna_up() and fe.omt.state.is_powered and fe.lnb.state.is_powered):
                return NO_PATH
            return fe.lnb.state.gain - omt_loss
        if tap == TapPoint.RX_IF:
            if not (self._antenna_up() and fe.omt.state.is_powered
                    and fe.lnb.state.is_powered and fe.filter.state.is_powered):
                return NO_PATH
            return self.get_total_rx_gain() - omt_loss
        if tap == TapPoint.TX_RF_POST_BUC:
            return fe.buc.state.gain
        if tap == TapPoint.TX_RF_POST_HPA:
            return fe.buc.state.gain + fe.hpa.state.gain
        if tap == TapPoint.TX_RF_POST_OMT:
            return fe.buc.state.gain + fe.hpa.state.gain - omt_loss
        return 0.0

    # -------------------------------------------------
    # Noise
    # -------------------------------------------------
    def get_noise_floor_if_rx(self) -> IfRxNoiseFloor:
        """External (filter floor + RX gain) against the analyzer's own floor."""
        filt = self.front_end.filter.state
        external = filt.noise_floor + self.get_total_rx_gain()
        internal = analyzer_noise_floor(filt.bandwidth * 1e6)
        if internal > external:
            return IfRxNoiseFloor(True, internal)
        return IfRxNoiseFloor(False, external - self.get_total_rx_gain())

    def get_noise_floor_at(self, tap: TapPoint, bandwidth_hz: float) -> NoiseFloorReading:
        fe = self.front_end
        if tap == TapPoint.RX_RF_PRE_OMT:
            antenna = fe.antenna
            if antenna is None:
                return NoiseFloorReading(NO_PATH, True)
            return NoiseFloorReading(antenna.noise_floor(4e9, bandwidth_hz), True)
        if tap in (TapPoint.RX_RF_POST_OMT, TapPoint.RX_RF_POST_LNA):
            return NoiseFloorReading(fe.lnb.get_noise_floor(bandwidth_hz), True)
        if tap == TapPoint.RX_IF:
            gain = self.get_total_gain_to(tap)
            external = fe.lnb.get_noise_floor(bandwidth_hz) + gain if fe.filter.state.is_powered else NO_PATH
            internal = analyzer_noise_floor(bandwidth_hz)
            if internal > external:
                return NoiseFloorReading(internal, False)
            return NoiseFloorReading(external - gain, True)
        return NoiseFloorReading(analyzer_noise_floor(bandwidth_hz), True)

    def displayed_noise_floor(self, tap: TapPoint, bandwidth_hz: float, coupling_db: float = 0.0) -> float:
        """Noise floor an analyzer on the coupler port would show, dBm. Never below its own floor."""
        reading = self.get_noise_floor_at(tap, bandwidth_hz)
        if reading.noise_floor == NO_PATH or not reading.apply_gain:
            return reading.noise_floor
        floor = reading.noise_floor + self.get_total_gain_to(tap) - abs(coupling_db)
        return max(floor, analyzer_noise_floor(bandwidth_hz))
