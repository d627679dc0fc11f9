# groundstation_rf/core/modules/coupler.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

from groundstation_rf.core.bus.models import RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback

logger = logging.getLogger(__name__)


class TapPoint(str, Enum):
    TX_IF = "TX IF"
    RX_IF = "RX IF"
    TX_RF_POST_BUC = "POST BUC / PRE HPA TX RF"
    TX_RF_POST_HPA = "POST HPA / PRE OMT TX RF"
    TX_RF_POST_OMT = "POST OMT/PRE ANT TX RF"
    RX_RF_PRE_OMT = "PRE OMT/POST ANT RX RF"
    RX_RF_POST_OMT = "POST OMT/PRE LNA RX RF"
    RX_RF_POST_LNA = "POST LNA RX RF"


TX_TAP_POINTS = (TapPoint.TX_IF, TapPoint.TX_RF_POST_BUC, TapPoint.TX_RF_POST_HPA, TapPoint.TX_RF_POST_OMT)
RX_TAP_POINTS = (TapPoint.RX_IF, TapPoint.RX_RF_PRE_OMT, TapPoint.RX_RF_POST_OMT, TapPoint.RX_RF_POST_LNA)


@dataclass
class CouplerState:
    is_powered: bool = True
    tap_point_a: TapPoint = TapPoint.TX_IF
    tap_point_b: TapPoint = TapPoint.RX_IF
    coupling_factor_a: float = -30.0    # dB
    coupling_factor_b: float = -20.0    # dB
    is_active_a: bool = True
    is_active_b: bool = True


class CouplerModule(RfModule[CouplerState]):
    """Two-port sampling coupler feeding the spectrum analyzer."""

    name = "coupler"
    TAG = "[COUPLER]"
    WATCHED_FIELDS = ("tap_point_a", "tap_point_b", "is_active_a", "is_active_b")

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        self.output_a: List[RfSignal] = []
        self.output_b: List[RfSignal] = []

    @classmethod
    def default_state(cls) -> CouplerState:
        return CouplerState()

    def update(self, dt: float) -> None:
        st = self._state
        st.is_active_a = st.tap_point_a in TX_TAP_POINTS or st.tap_point_a in RX_TAP_POINTS
        st.is_active_b = st.tap_point_b in TX_TAP_POINTS or st.tap_point_b in RX_TAP_POINTS
        self.output_a = self._sample(st.tap_point_a, st.coupling_factor_a) if st.is_active_a else []
        self.output_b = self._sample(st.tap_point_b, st.coupling_factor_b) if st.is_active_b else []

    def _sample(self, tap: TapPoint, coupling_db: float) -> List[RfSignal]:
        fe = self.front_end
        if fe is None:
            return []
        loss = abs(coupling_db)
        return [
            s.derive(power=s.power - loss, origin=SignalOrigin.COUPLER)
            for s in fe.signal_path.signals_at(tap)
        ]

    def get_coupler_output_a(self) -> List[RfSignal]:
        return list(self.output_a)

    def get_coupler_output_b(self) -> List[RfSignal]:
        return list(self.output_b)

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def _set_tap(self, attr: str, tap, cb: StateCallback) -> None:
        try:
            value = TapPoint(tap.value if isinstance(tap, TapPoint) else tap)
        except ValueError:
            logger.warning("[COUPLER] unknown tap point %r", tap)
            return
        setattr(self._state, attr, value)
        self.update(0.0)
        self._changed(cb)

    def handle_tap_point_a_change(self, tap, cb: StateCallback = None) -> None:
        self._set_tap("tap_point_a", tap, cb)

    def handle_tap_point_b_change(self, tap, cb: StateCallback = None) -> None:
        self._set_tap("tap_point_b", tap, cb)

    def get_alarms(self) -> List[str]:
        if self._state.tap_point_a == self._state.tap_point_b:
            return ["Both tap points set to same location"]
        return []
