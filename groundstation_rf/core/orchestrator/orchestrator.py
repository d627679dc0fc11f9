"""
Central owner of the RF front-end modules.
Responsibilities:
- Create every module once and hand each a reference back to this object
- Run the per-tick update in dependency order
- Aggregate alarms and system noise figure
- Publish UPDATE / ALARM / MODULE_CHANGED on its own event bus
"""

from __future__ import annotations

import dataclasses
import logging
import uuid as _uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np

from groundstation_rf.core.bus.event_bus import EventBus, Topic
from groundstation_rf.core.bus.models import AlarmSeverity, AlarmStatus, AlarmsRaised, ModuleChanged
from groundstation_rf.core.modules.base import RfModule, state_to_dict
from groundstation_rf.core.modules.buc import BucModule, BucState
from groundstation_rf.core.modules.coupler import CouplerModule, CouplerState
from groundstation_rf.core.modules.filter import FilterModule, FilterState
from groundstation_rf.core.modules.gpsdo import GpsdoModule, GpsdoState
from groundstation_rf.core.modules.hpa import HpaModule, HpaState
from groundstation_rf.core.modules.lnb import LnbModule, LnbState
from groundstation_rf.core.modules.omt import OmtModule, OmtState
from groundstation_rf.core.orchestrator.signal_path import SignalPathManager
from groundstation_rf.core.peers.base import Antenna, Transmitter
from groundstation_rf.core.rf_math import friis_noise_factor, linear_to_db
from groundstation_rf.settings import settings

logger = logging.getLogger(__name__)

MODULE_KEYS = ("omt", "buc", "hpa", "filter", "lnb", "coupler", "gpsdo")
ERROR_MARKERS = ("over-temperature", "high current", "not operational")


@dataclass
class RfFrontEndState:
    """
    Aggregate view. Module fields are the live state objects owned by each
    module, never copies.
    """
    uuid: str
    team_id: int
    server_id: int
    omt: OmtState
    buc: BucState
    hpa: HpaState
    filter: FilterState
    lnb: LnbState
    coupler: CouplerState
    gpsdo: GpsdoState


def classify_alarm(message: str) -> AlarmSeverity:
    text = message.lower()
    if any(marker in text for marker in ERROR_MARKERS):
        return AlarmSeverity.ERROR
    return AlarmSeverity.WARNING


class RfFrontEnd:
    """
    Single authoritative owner of the front-end modules.

    Tick order:
      interlocks -> GPSDO -> BUC -> HPA -> OMT -> LNB -> filter -> coupler
    The reference is settled before anything reads its lock, and every
    stage reads upstream outputs computed earlier in the same tick.
    """

    def __init__(
        self,
        state: Union[Mapping[str, Any], RfFrontEndState, None] = None,
        team_id: int = 1,
        server_id: int = 1,
        rng: Optional[np.random.Generator] = None,
        gpsdo_warmup_s: Optional[float] = None,
    ):
        partial = self._as_partial(state)
        self.uuid: str = str(partial.get("uuid") or _uuid.uuid4())
        self.team_id = int(partial.get("team_id", team_id))
        self.server_id = int(partial.get("server_id", server_id))

        self.rng = rng if rng is not None else np.random.default_rng(settings.RNG_SEED)
        self.bus = EventBus()

        # Peers, wired once at assembly
        self.antenna: Optional[Antenna] = None
        self.transmitters: List[Transmitter] = []

        # ----------------------------------------
        # Modules (reference first)
        # ----------------------------------------
        self.gpsdo = GpsdoModule(self, partial.get("gpsdo"), self.rng, warmup_total_s=gpsdo_warmup_s)
        self.buc = BucModule(self, partial.get("buc"), self.rng)
        self.hpa = HpaModule(self, partial.get("hpa"), self.rng)
        self.omt = OmtModule(self, partial.get("omt"), self.rng)
        self.lnb = LnbModule(self, partial.get("lnb"), self.rng)
        self.filter = FilterModule(self, partial.get("filter"), self.rng)
        self.coupler = CouplerModule(self, partial.get("coupler"), self.rng)

        self.signal_path = SignalPathManager(self)

        self.system_noise_figure: float = 0.0
        self.sim_time_s: float = 0.0
        self._alarms: List[AlarmStatus] = []
        self._last_alarm_key: tuple = ()

    @staticmethod
    def _as_partial(state) -> Dict[str, Any]:
        if state is None:
            return {}
        if dataclasses.is_dataclass(state) and not isinstance(state, type):
            return {f.name: getattr(state, f.name) for f in dataclasses.fields(state)}
        if isinstance(state, Mapping):
            return dict(state)
        logger.warning("[RFFE] ignoring initial state of type %s", type(state).__name__)
        return {}

    # -------------------------------------------------
    # State
    # -------------------------------------------------
    @property
    def modules(self) -> Dict[str, RfModule]:
        return {
            "omt": self.omt,
            "buc": self.buc,
            "hpa": self.hpa,
            "filter": self.filter,
            "lnb": self.lnb,
            "coupler": self.coupler,
            "gpsdo": self.gpsdo,
        }

    @property
    def state(self) -> RfFrontEndState:
        return RfFrontEndState(
            uuid=self.uuid,
            team_id=self.team_id,
            server_id=self.server_id,
            omt=self.omt.state,
            buc=self.buc.state,
            hpa=self.hpa.state,
            filter=self.filter.state,
            lnb=self.lnb.state,
            coupler=self.coupler.state,
            gpsdo=self.gpsdo.state,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Primitive snapshot handed to the persistence collaborator."""
        out: Dict[str, Any] = {"uuid": self.uuid, "team_id": self.team_id, "server_id": self.server_id}
        for key, module in self.modules.items():
            out[key] = state_to_dict(module.state)
        return out

    def sync(self, partial: Union[Mapping[str, Any], RfFrontEndState, None]) -> None:
        data = self._as_partial(partial)
        if not data:
            return
        for key in MODULE_KEYS:
            if data.get(key) is not None:
                self.modules[key].sync(data[key])
        # re-run the interlock so a loaded state cannot violate it
        self.hpa.enforce_interlock()
        self.bus.publish_nowait(Topic.SYNC, self.state)
        logger.debug("[RFFE] synced %s", ", ".join(k for k in MODULE_KEYS if k in data))

    # -------------------------------------------------
    # Wiring
    # -------------------------------------------------
    def connect_antenna(self, antenna: Antenna) -> None:
        self.antenna = antenna
        logger.info("[RFFE] antenna %s connected", getattr(antenna, "antenna_id", "?"))

    def connect_transmitter(self, transmitter: Transmitter) -> None:
        if transmitter in self.transmitters:
            return
        self.transmitters.append(transmitter)
        logger.info("[RFFE] transmitter %s connected", getattr(transmitter, "transmitter_id", "?"))

    # -------------------------------------------------
    # Tick
    # -------------------------------------------------
    def update(self, dt: Optional[float] = None) -> None:
        if dt is None:
            dt = 1.0 / settings.UPDATE_HZ
        dt = max(float(dt), 0.0)
        self.sim_time_s += dt

        self.hpa.enforce_interlock()

        self.gpsdo.update(dt)
        self.buc.update(dt)
        self.hpa.update(dt)
        self.omt.update(dt)
        self.lnb.update(dt)
        self.filter.update(dt)
        self.coupler.update(dt)

        if self.antenna is not None:
            self.antenna.radiate(self.omt.tx_signals_out)

        self.system_noise_figure = self.compute_system_noise_figure()
        self._check_alarms()

        for module in self.modules.values():
            if module.has_state_changed():
                self.bus.publish_nowait(Topic.MODULE_CHANGED, ModuleChanged(module.name, module.state, self.sim_time_s))
        self.bus.publish_nowait(Topic.UPDATE, self.state)

    def compute_system_noise_figure(self) -> float:
        """Filter (passive: NF = loss, G = -loss) ahead of the LNA, Friis cascade, dB."""
        loss = self.filter.state.insertion_loss
        lnb = self.lnb.state
        factor = friis_noise_factor([(loss, -loss), (lnb.lna_noise_figure, lnb.gain)])
        return linear_to_db(factor)

    # -------------------------------------------------
    # Alarms
    # -------------------------------------------------
    def _check_alarms(self) -> None:
        alarms = self.get_alarms()
        key = tuple((a.severity, a.message) for a in alarms)
        if key != self._last_alarm_key:
            self._last_alarm_key = key
            for a in alarms:
                logger.debug("[RFFE] alarm %s: %s", a.severity.value, a.message)
            self.bus.publish_nowait(Topic.ALARM, AlarmsRaised(alarms, self.sim_time_s))
        self._alarms = alarms

    def get_alarms(self) -> List[AlarmStatus]:
        out: List[AlarmStatus] = []
        for key in MODULE_KEYS:
            for message in self.modules[key].get_alarms():
                out.append(AlarmStatus(classify_alarm(message), message))
        return out

    def get_status_alarms(self, case_index: int) -> List[AlarmStatus]:
        """Alarms for one of the two physical cases: 1 = TX side, 2 = RX side and reference."""
        if case_index == 1:
            modules = (self.omt, self.buc, self.hpa)
        elif case_index == 2:
            modules = (self.filter, self.lnb, self.gpsdo)
        else:
            return []
        if not any(m.state.is_powered for m in modules):
            return [AlarmStatus(AlarmSeverity.OFF, "")]
        messages = [msg for m in modules for msg in m.get_alarms()]
        return [AlarmStatus(classify_alarm(m), m) for m in messages]

    # -------------------------------------------------
    # Module callbacks
    # -------------------------------------------------
    def notify_module_changed(self, module: RfModule) -> None:
        if module.has_state_changed():
            self.bus.publish_nowait(Topic.MODULE_CHANGED, ModuleChanged(module.name, module.state, self.sim_time_s))

    # -------------------------------------------------
    # Convenience pass-throughs
    # -------------------------------------------------
    @property
    def external_noise(self) -> float:
        return self.signal_path.get_external_noise()

    def get_total_rx_gain(self) -> float:
        return self.signal_path.get_total_rx_gain()

    def get_coupler_output_a(self):
        return self.coupler.get_coupler_output_a()

    def get_coupler_output_b(self):
        return self.coupler.get_coupler_output_b()
