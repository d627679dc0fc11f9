# groundstation_rf/core/modules/filter.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, NamedTuple

from groundstation_rf.core.bus.models import RfSignal, SignalOrigin
from groundstation_rf.core.modules.base import RfModule, StateCallback
from groundstation_rf.core.rf_math import is_finite_number

logger = logging.getLogger(__name__)


class FilterBandwidthConfig(NamedTuple):
    bandwidth: float        # MHz
    noise_floor: float      # dBm
    insertion_loss: float   # dB
    label: str


FILTER_BANDWIDTH_CONFIGS: List[FilterBandwidthConfig] = [
    FilterBandwidthConfig(0.03, -129.0, 3.5, "30 kHz"),
    FilterBandwidthConfig(0.1, -124.0, 3.2, "100 kHz"),
    FilterBandwidthConfig(0.2, -121.0, 3.0, "200 kHz"),
    FilterBandwidthConfig(0.5, -117.0, 2.9, "500 kHz"),
    FilterBandwidthConfig(1.0, -114.0, 2.8, "1 MHz"),
    FilterBandwidthConfig(2.0, -111.0, 2.6, "2 MHz"),
    FilterBandwidthConfig(5.0, -107.0, 2.4, "5 MHz"),
    FilterBandwidthConfig(10.0, -104.0, 2.2, "10 MHz"),
    FilterBandwidthConfig(20.0, -101.0, 2.0, "20 MHz"),
    FilterBandwidthConfig(40.0, -98.0, 1.8, "40 MHz"),
    FilterBandwidthConfig(80.0, -95.0, 1.6, "80 MHz"),
    FilterBandwidthConfig(160.0, -92.0, 1.5, "160 MHz"),
    FilterBandwidthConfig(320.0, -89.0, 1.5, "320 MHz"),
]
DEFAULT_BANDWIDTH_INDEX = 8     # 20 MHz
INSERTION_LOSS_ALARM_DB = 3.0


@dataclass
class FilterState:
    is_powered: bool = True
    bandwidth_index: int = DEFAULT_BANDWIDTH_INDEX
    bandwidth: float = 20.0             # MHz
    insertion_loss: float = 2.0         # dB
    center_frequency: float = 5800e6    # Hz
    noise_floor: float = -101.0         # dBm


class FilterModule(RfModule[FilterState]):
    """Switched IF filter bank after the LNB."""

    name = "filter"
    TAG = "[FILTER]"
    WATCHED_FIELDS = ("is_powered", "bandwidth_index", "bandwidth", "insertion_loss", "noise_floor")

    def __init__(self, front_end=None, state=None, rng=None):
        super().__init__(front_end, state, rng)
        self.input_signals: List[RfSignal] = []
        self.output_signals: List[RfSignal] = []
        self._apply_bandwidth_config()

    @classmethod
    def default_state(cls) -> FilterState:
        return FilterState()

    @property
    def config(self) -> FilterBandwidthConfig:
        return FILTER_BANDWIDTH_CONFIGS[self._state.bandwidth_index]

    def _apply_bandwidth_config(self) -> None:
        st = self._state
        idx = min(max(int(st.bandwidth_index), 0), len(FILTER_BANDWIDTH_CONFIGS) - 1)
        st.bandwidth_index = idx
        cfg = FILTER_BANDWIDTH_CONFIGS[idx]
        st.bandwidth = cfg.bandwidth
        st.insertion_loss = cfg.insertion_loss
        st.noise_floor = cfg.noise_floor

    def on_sync(self) -> None:
        self._apply_bandwidth_config()

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: float) -> None:
        self.input_signals = self._collect_inputs()
        self.output_signals = [self.filter_signal(s) for s in self.input_signals]

    def _collect_inputs(self) -> List[RfSignal]:
        fe = self.front_end
        if fe is None:
            return []
        signals = list(fe.lnb.if_signals)
        # modems in IF loopback bypass the whole RF chain
        for tx in fe.transmitters:
            for modem in tx.modems:
                if modem.is_transmitting and not modem.is_faulted and modem.is_loopback:
                    signals.append(modem.if_signal)
        return signals

    def filter_signal(self, sig: RfSignal) -> RfSignal:
        """Carriers wider than the passband lose 10log10(Bs/Bf); everything pays insertion loss."""
        bw_hz = self._state.bandwidth * 1e6
        power = sig.power
        if bw_hz > 0 and sig.bandwidth > bw_hz:
            power -= 10.0 * math.log10(sig.bandwidth / bw_hz)
        return sig.derive(power=power - self._state.insertion_loss, origin=SignalOrigin.FILTER)

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------
    def handle_bandwidth_change(self, bandwidth_index, cb: StateCallback = None) -> None:
        if not is_finite_number(bandwidth_index):
            logger.warning("[FILTER] ignoring bandwidth index %r", bandwidth_index)
            return
        idx = int(round(float(bandwidth_index)))
        if idx < 0 or idx >= len(FILTER_BANDWIDTH_CONFIGS):
            logger.warning("[FILTER] bandwidth index %d clamped", idx)
        self._state.bandwidth_index = idx
        self._apply_bandwidth_config()
        logger.info("[FILTER] bandwidth %s", self.config.label)
        self._changed(cb)

    def get_alarms(self) -> List[str]:
        if self._state.insertion_loss > INSERTION_LOSS_ALARM_DB:
            return [f"Filter insertion loss high ({self._state.insertion_loss:.1f} dB)"]
        return []
