import numpy as np
import pytest

from groundstation_rf.core.bus.models import Polarization, RfSignal
from groundstation_rf.core.orchestrator.orchestrator import RfFrontEnd
from groundstation_rf.core.peers.mock import MockAntenna, MockTransmitter


def sky_signal(frequency_mhz=4700.0, power=-90.0, bandwidth_mhz=10.0, modulation="QPSK", fec="3/4",
               polarization=Polarization.V, **kw):
    return RfSignal(
        frequency=frequency_mhz * 1e6,
        power=power,
        bandwidth=bandwidth_mhz * 1e6,
        modulation=modulation,
        fec=fec,
        polarization=polarization,
        **kw,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def antenna():
    return MockAntenna("antenna-1", [sky_signal()])


@pytest.fixture
def transmitter():
    tx = MockTransmitter("tx-1")
    tx.add_modem(frequency_hz=1200e6, power_dbm=-10.0, bandwidth_hz=10e6)
    return tx


@pytest.fixture
def front_end(rng, antenna, transmitter):
    fe = RfFrontEnd(rng=rng, gpsdo_warmup_s=20.0)
    fe.connect_antenna(antenna)
    fe.connect_transmitter(transmitter)
    return fe


def run(fe, seconds, dt=0.1):
    for _ in range(int(round(seconds / dt))):
        fe.update(dt)
