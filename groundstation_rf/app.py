import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from groundstation_rf.settings import settings

# Level comes from GSRF_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(levelname)s: %(message)s'
)

from groundstation_rf.api import panels
from groundstation_rf.core.bus.models import Polarization, RfSignal
from groundstation_rf.core.orchestrator.orchestrator import RfFrontEnd
from groundstation_rf.core.peers.mock import MockAntenna, MockTransmitter
from groundstation_rf.core.receiver.iq_constellation import ConstellationFrame, IqConstellation
from groundstation_rf.core.receiver.receiver import Receiver
from groundstation_rf.core.scheduler.tick_scheduler import TickScheduler

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Station assembly
# ------------------------------------------------------------
@dataclass
class Station:
    front_end: RfFrontEnd
    antenna: MockAntenna
    transmitter: MockTransmitter
    receiver: Receiver
    iq: IqConstellation
    scheduler: TickScheduler
    last_frame: Optional[ConstellationFrame] = None

    def _on_tick(self, dt: float) -> None:
        self.last_frame = self.iq.render(self.receiver.get_iq_info(), dt)


def default_sky() -> list:
    """One QPSK carrier sitting on the default modem tuning."""
    return [
        RfSignal(
            frequency=4700e6,
            power=-90.0,
            bandwidth=10e6,
            modulation="QPSK",
            fec="3/4",
            polarization=Polarization.V,
        ),
    ]


def create_station(seed: Optional[int] = None, gpsdo_warmup_s: Optional[float] = None) -> Station:
    rng = np.random.default_rng(settings.RNG_SEED if seed is None else seed)

    front_end = RfFrontEnd(rng=rng, gpsdo_warmup_s=gpsdo_warmup_s)
    antenna = MockAntenna("antenna-1", default_sky())
    transmitter = MockTransmitter("tx-1")
    transmitter.add_modem()
    front_end.connect_antenna(antenna)
    front_end.connect_transmitter(transmitter)

    receiver = Receiver([antenna], front_end=front_end)
    iq = IqConstellation(rng)
    scheduler = TickScheduler(front_end)

    station = Station(front_end, antenna, transmitter, receiver, iq, scheduler)
    scheduler.add_hook(station._on_tick)
    return station


# ------------------------------------------------------------
# Headless runs
# ------------------------------------------------------------
def run_for(station: Station, seconds: float) -> None:
    """Deterministic: advance simulated time in fixed steps, no sleeping."""
    ticks = int(round(seconds * station.scheduler.update_hz))
    for _ in range(max(0, ticks)):
        station.scheduler.step()


async def run_realtime(station: Station, seconds: float) -> None:
    await station.scheduler.start()
    try:
        await asyncio.sleep(seconds)
    finally:
        await station.scheduler.stop()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument("--seconds", type=float, default=10.0, help="simulated seconds to run")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--realtime", action="store_true", help="run on the wall clock via asyncio")
    parser.add_argument("--fast-warmup", action="store_true", help="shorten GPSDO oven warmup")
    args = parser.parse_args(argv)

    warmup = settings.GPSDO_FAST_WARMUP_S if args.fast_warmup else None
    station = create_station(seed=args.seed, gpsdo_warmup_s=warmup)

    if args.realtime:
        asyncio.run(run_realtime(station, args.seconds))
    else:
        run_for(station, args.seconds)

    summary = panels.front_end_summary(station.front_end)
    summary["receiver"] = panels.receiver_panel(station.receiver)
    if station.last_frame is not None:
        summary["iq"] = {"cn": station.last_frame.cn_text, "lock": station.last_frame.lock_text}

    for alarm in station.front_end.get_alarms():
        print(f"[{alarm.severity.value.upper()}] {alarm.message}")
    print(json.dumps(summary, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
