# groundstation_rf/core/modules/omt.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from groundstation_rf.core.bus.models import Polarization, RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback

logger = logging.getLogger(__name__)

ISOLATION_FAULT_DB = 25.0
SKEW_WINDOW_DEG = 15.0


def _swap(pol: Optional[Polarization]) -> Optional[Polarization]:
    if pol == Polarization.H:
        return Polarization.V
    if pol == Polarization.V:
        return Polarization.H
    return pol


@dataclass
class OmtState:
    is_powered: bool = True
    insertion_loss: float = 0.5                  # dB
    tx_polarization: Polarization = Polarization.H
    rx_polarization: Polarization = Polarization.V
    cross_pol_isolation: float = 28.5            # dB
    effective_tx_pol: Optional[Polarization] = Polarization.H
    effective_rx_pol: Optional[Polarization] = Polarization.V
    is_faulted: bool = False


class OmtModule(RfModule[OmtState]):
    """Orthomode transducer / duplexer. Passive; routes TX and RX by polarization."""

    name = "omt"
    TAG = "[OMT]"
    WATCHED_FIELDS = (
        "tx_polarization", "rx_polarization", "cross_pol_isolation",
        "effective_tx_pol", "effective_rx_pol", "is_faulted",
    )

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        self.tx_signals_in: List[RfSignal] = []
        self.tx_signals_out: List[RfSignal] = []
        self.rx_signals_in: List[RfSignal] = []
        self.rx_signals_out: List[RfSignal] = []
        self._warned_no_antenna = False

    @classmethod
    def default_state(cls) -> OmtState:
        return OmtState()

    def _antenna(self):
        return getattr(self.front_end, "antenna", None) if self.front_end is not None else None

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        antenna = self._antenna()
        self._update_effective_polarization(antenna.skew_deg if antenna is not None else None)

        self.tx_signals_in = list(self.front_end.hpa.output_signals) if self.front_end is not None else []
        self.tx_signals_out = [
            s.derive(polarization=self._state.tx_polarization, origin=SignalOrigin.OMT_TX)
            for s in self.tx_signals_in
        ]

        self.rx_signals_in = self._collect_rx(antenna)
        self._update_cross_pol_isolation(antenna)

        eff_rx = self._state.effective_rx_pol
        out: List[RfSignal] = []
        for sig in self.rx_signals_in:
            if sig.polarization != eff_rx:
                out.append(sig.derive(
                    power=sig.power - self._state.cross_pol_isolation,
                    is_degraded=True,
                    origin=SignalOrigin.OMT_RX,
                ))
            else:
                out.append(sig.derive(origin=SignalOrigin.OMT_RX))
        self.rx_signals_out = out

    def _collect_rx(self, antenna) -> List[RfSignal]:
        if antenna is None:
            return []
        if antenna.is_loopback:
            # loopback: our own TX comes straight back, cross-polarized
            return [s.derive(polarization=_swap(s.polarization)) for s in self.tx_signals_out]
        return list(antenna.rx_signals())

    def _update_cross_pol_isolation(self, antenna) -> None:
        st = self._state
        if antenna is None:
            if not self._warned_no_antenna:
                logger.warning("[OMT] no antenna connected, cross-pol isolation unknown")
                self._warned_no_antenna = True
            st.is_faulted = True
            return
        self._warned_no_antenna = False

        first = self.rx_signals_in[0] if self.rx_signals_in else None
        if first is None or first.polarization == st.effective_rx_pol:
            st.cross_pol_isolation = float(self.rng.uniform(30.0, 35.0))
        else:
            st.cross_pol_isolation = float(self.rng.uniform(15.0, 25.0))
        st.is_faulted = st.cross_pol_isolation < ISOLATION_FAULT_DB

    def _update_effective_polarization(self, skew_deg: Optional[float]) -> None:
        """
        Feed skew near 0/180 deg leaves the ports as wired (TX H, RX V); near
        90 deg it rotates them. In between the configured ports are kept.
        A V-transmit configuration mirrors the result.
        """
        st = self._state
        if skew_deg is None:
            st.effective_tx_pol = None
            st.effective_rx_pol = None
            return
        skew = ((skew_deg % 180.0) + 180.0) % 180.0
        reversed_ports = st.tx_polarization == Polarization.V

        if skew <= SKEW_WINDOW_DEG or skew >= 180.0 - SKEW_WINDOW_DEG:
            tx, rx = Polarization.H, Polarization.V
        elif abs(skew - 90.0) <= SKEW_WINDOW_DEG:
            tx, rx = Polarization.V, Polarization.H
        else:
            tx, rx = st.tx_polarization, st.rx_polarization
            reversed_ports = False

        if reversed_ports:
            tx, rx = _swap(tx), _swap(rx)
        if (tx, rx) != (st.effective_tx_pol, st.effective_rx_pol):
            logger.debug("[OMT] effective polarization TX %s RX %s", tx, rx)
        st.effective_tx_pol = tx
        st.effective_rx_pol = rx

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_polarization_toggle(self, is_vertical: bool, cb: StateCallback = None) -> None:
        if not isinstance(is_vertical, bool):
            logger.warning("[OMT] ignoring polarization toggle %r", is_vertical)
            return
        st = self._state
        st.tx_polarization = Polarization.V if is_vertical else Polarization.H
        st.rx_polarization = Polarization.H if is_vertical else Polarization.V
        self._changed(cb)

    def get_alarms(self) -> List[str]:
        if self._state.is_faulted:
            return ["Cross-pol isolation degraded"]
        return []
